# ------------------------------------------------------------
# Module: h5p_assist/api/deps.py
# Purpose: FastAPI dependencies shared by the v1 routers.
# ------------------------------------------------------------

from __future__ import annotations

from fastapi import HTTPException, Request

from h5p_assist.llm.client.protocols import LLMClient


def get_llm_client(request: Request) -> LLMClient:
    """Upstream client owned by the lifespan (or injected via `create_app`)."""
    client = getattr(request.app.state, "llm", None)
    if client is None:
        raise HTTPException(status_code=503, detail="upstream client not initialized")
    return client
