# ------------------------------------------------------------
# Module: h5p_assist/api/v1/suggestions.py
# Purpose: H5P suggestion endpoints (one-shot JSON and streaming NDJSON).
# ------------------------------------------------------------

"""Editor-facing suggestion endpoints.

Thin adapters around `h5p_assist.services.suggestions`.

Responsibilities
----------------
- Validate `{contentType, description, context?}` bodies; reply 400 `{error}` otherwise.
- One-shot: return `{suggestions}`; 502 `{error}` when the upstream fails.
- Streaming: return NDJSON `{response}` records as they arrive; 502 `{error}`
  when the upstream fails before any byte was written.
- Attach correlation IDs to logs and responses.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from h5p_assist.api.deps import get_llm_client
from h5p_assist.llm.client.protocols import LLMClient
from h5p_assist.services.suggestions import get_suggestions, open_suggestion_stream
from h5p_assist.stream.errors import UpstreamUnreachable
from h5p_assist.utils.logging_extras import log_adapter, new_cid

router = APIRouter()
logger = logging.getLogger(__name__)

MISSING_FIELDS_TEXT = "Content type and description are required"
SUGGESTIONS_FAILED_TEXT = "Failed to get content suggestions"
STREAM_FAILED_TEXT = "Failed to stream content suggestions"


class SuggestionIn(BaseModel):
    """Request body; `context` is the opaque token from a previous final record."""

    model_config = ConfigDict(populate_by_name=True)

    content_type: str = Field(..., alias="contentType")
    description: str
    context: list[int] | None = None

    @field_validator("content_type", "description")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


def _error(status_code: int, text: str, cid: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": text},
        headers={"x-correlation-id": cid},
    )


async def _read_body(req: Request) -> SuggestionIn | None:
    try:
        body = await req.json()
        return SuggestionIn.model_validate(body)
    except (ValueError, ValidationError):
        return None


@router.post("/suggestions")
async def suggestions(req: Request, client: LLMClient = Depends(get_llm_client)):
    cid = new_cid(req.headers.get("x-correlation-id"))
    lad = log_adapter(logger, cid)
    in_ = await _read_body(req)
    if in_ is None:
        lad.info("suggestions.bad_request")
        return _error(400, MISSING_FIELDS_TEXT, cid)

    try:
        result = await get_suggestions(
            in_.content_type,
            in_.description,
            client=client,
            context=tuple(in_.context) if in_.context else None,
            cid=cid,
        )
    except UpstreamUnreachable as e:
        lad.error("suggestions.upstream_failed", extra={"error": str(e)[:200]})
        return _error(502, SUGGESTIONS_FAILED_TEXT, cid)

    payload: dict = {"suggestions": result.response}
    if result.context:
        payload["context"] = list(result.context)
    return JSONResponse(payload, headers={"x-correlation-id": cid})


# Streaming variant: same body, NDJSON records, connection closed on completion.
@router.post("/suggestions/stream")
async def suggestions_stream(req: Request, client: LLMClient = Depends(get_llm_client)):
    cid = new_cid(req.headers.get("x-correlation-id"))
    lad = log_adapter(logger, cid)
    in_ = await _read_body(req)
    if in_ is None:
        lad.info("suggestions.stream.bad_request")
        return _error(400, MISSING_FIELDS_TEXT, cid)

    try:
        body = await open_suggestion_stream(
            in_.content_type,
            in_.description,
            client=client,
            context=tuple(in_.context) if in_.context else None,
            cid=cid,
        )
    except UpstreamUnreachable as e:
        lad.error("suggestions.stream.upstream_failed", extra={"error": str(e)[:200]})
        return _error(502, STREAM_FAILED_TEXT, cid)

    # Proxy-safe headers so each record reaches the editor immediately.
    return StreamingResponse(
        body,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "x-correlation-id": cid,
        },
    )
