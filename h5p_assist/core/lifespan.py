# ------------------------------------------------------------
# Module: h5p_assist/core/lifespan.py
# Purpose: Open and close the shared upstream client around the relay's lifetime.
# ------------------------------------------------------------

"""FastAPI lifespan for the suggestion relay.

Responsibilities
----------------
- Open the shared `OllamaClient` (one httpx connection pool) at startup,
  unless `create_app` was handed a client already.
- Close only what was opened here at shutdown.

Developer Guidance
------------------
- `app.state.llm` is the only shared object; per-request state never lives there.
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI

from h5p_assist.core.config import settings
from h5p_assist.llm.client.ollama_client import OllamaClient

logger = logging.getLogger("h5p_assist.lifespan")


@asynccontextmanager
async def lifespan(app: FastAPI):
    t0 = time.perf_counter()
    opened: OllamaClient | None = None
    if getattr(app.state, "llm", None) is None:
        opened = OllamaClient.from_settings(settings)
        app.state.llm = opened
    client = app.state.llm
    logger.info(
        "relay up in %.1f ms upstream=%s model=%s fallback=%s",
        (time.perf_counter() - t0) * 1000,
        getattr(client, "base", "injected"),
        client.model,
        getattr(client, "fallback", None),
    )
    try:
        yield
    finally:
        if opened is not None:
            try:
                await opened.aclose()
            except Exception:
                logger.exception("upstream client close failed")
            app.state.llm = None
        logger.info("relay down")
