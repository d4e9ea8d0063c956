# ------------------------------------------------------------
# Module: h5p_assist/api/v1/health.py
# Purpose: Lightweight readiness endpoint for the suggestion relay.
# ------------------------------------------------------------

"""Health check endpoint.

Summary:
    `/health/ready` answers 200 `{"status": "ready"}` when the relay has an
    upstream client configured, 503 `{"status": "degraded"}` otherwise.

Developer Guidance:
    - Keep this endpoint fast and non-blocking; it never calls the model.
"""

import logging

from fastapi import APIRouter, Request, Response

router: APIRouter = APIRouter()
log = logging.getLogger("h5p_assist.api.health")


@router.get("/ready", include_in_schema=True)
def ready(request: Request, res: Response) -> dict[str, str]:
    log.debug("ready check begin")
    client = getattr(request.app.state, "llm", None)
    if client is None:
        log.warning("ready check failed: no upstream client")
        res.status_code = 503
        return {"status": "degraded"}
    return {"status": "ready", "model": client.model}
