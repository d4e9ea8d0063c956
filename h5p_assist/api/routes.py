# ------------------------------------------------------------
# Module: h5p_assist/api/routes.py
# Purpose: Compose and expose all v1 FastAPI routers.
# ------------------------------------------------------------

"""Central composition root for versioned API routing.

Responsibilities
----------------
- Create the v1 APIRouter composition root (mounted under `API_PREFIX` by app.main).
- Mount health and H5P chat sub-routers with stable prefixes and tags.
"""

from __future__ import annotations

from fastapi import APIRouter

from h5p_assist.api.v1.health import router as health_router
from h5p_assist.api.v1.suggestions import router as suggestions_router

# Keep inclusion order stable for deterministic OpenAPI tag/group order.
router: APIRouter = APIRouter()

router.include_router(health_router, prefix="/health", tags=["health"])
# One-shot and streaming share /h5p/chat; subpaths are /suggestions and /suggestions/stream.
router.include_router(suggestions_router, prefix="/h5p/chat", tags=["h5p-chat"])
