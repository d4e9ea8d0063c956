# ------------------------------------------------------------
# Module: h5p_assist/main.py
# Purpose: FastAPI application factory for the suggestion relay.
# ------------------------------------------------------------

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from h5p_assist.api.routes import router as v1_router
from h5p_assist.core.config import Settings, settings as _settings
from h5p_assist.core.lifespan import lifespan
from h5p_assist.core.logging import configure_logging
from h5p_assist.llm.client.protocols import LLMClient


def create_app(
    llm_client: LLMClient | None = None, settings: Settings = _settings
) -> FastAPI:
    """Build the relay app; pass `llm_client` to bypass the lifespan-managed Ollama client."""
    configure_logging(settings)

    app = FastAPI(title="H5P Assist relay", lifespan=lifespan)
    app.state.llm = llm_client

    # Let the editor frontend call the relay from its dev server origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-correlation-id"],
    )

    app.include_router(v1_router, prefix=settings.API_PREFIX)
    return app


app = create_app()
