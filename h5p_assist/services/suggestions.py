# ------------------------------------------------------------
# Module: h5p_assist/services/suggestions.py
# Purpose: Relay suggestion requests to the upstream model (one-shot and streaming).
# ------------------------------------------------------------

"""Suggestion relay: prompt building plus one upstream call per user request.

Responsibilities
----------------
- Build the prompt once and issue exactly one upstream generate call.
- One-shot: return the full reply.
- Streaming: prime the upstream stream so failures before the first fragment
  surface to the caller, then forward each fragment as one NDJSON line.
- Terminate a broken stream with one explicit error record; never retract
  already forwarded fragments.
- Release the upstream connection however the downstream side ends.

Notes
-----
- Nothing here is shared between invocations; every call owns its prompt,
  upstream iterator, and counters.
- Timing fields use milliseconds.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from h5p_assist.llm.client.protocols import LLMClient
from h5p_assist.llm.prompts import build_prompt
from h5p_assist.llm.types import ErrorRecord, Fragment, GenerationResult
from h5p_assist.stream.errors import UpstreamMidStreamFailure
from h5p_assist.stream.framing import encode_record
from h5p_assist.utils.logging_extras import log_adapter
from h5p_assist.utils.timing import log_timer, ms_since, now_ns

logger = logging.getLogger(__name__)

STREAM_BROKEN_TEXT = "upstream stream interrupted"


async def get_suggestions(
    content_type: str,
    description: str,
    *,
    client: LLMClient,
    context: tuple[int, ...] | None = None,
    cid: str | None = None,
) -> GenerationResult:
    """Run a one-shot suggestion request; raises `UpstreamUnreachable` on failure."""
    lad = log_adapter(logger, cid)
    prompt = build_prompt(content_type, description)
    req = client.request(prompt, context=context, stream=False)
    with log_timer("relay.suggestions", lad, content_type=content_type, model=req.model):
        return await client.generate(req)


def _wire(frag: Fragment) -> bytes | None:
    # Empty non-final deltas carry nothing worth a write.
    if not frag.delta and not frag.is_final:
        return None
    return encode_record(frag)


async def open_suggestion_stream(
    content_type: str,
    description: str,
    *,
    client: LLMClient,
    context: tuple[int, ...] | None = None,
    cid: str | None = None,
) -> AsyncIterator[bytes]:
    """Open the upstream stream and return the downstream NDJSON byte stream.

    Notes
    -----
    - Awaits the first upstream fragment before returning, so
      `UpstreamUnreachable` is raised here and no downstream byte is produced.
    - The returned iterator must be consumed or closed by the caller.
    """
    lad = log_adapter(logger, cid)
    prompt = build_prompt(content_type, description)
    req = client.request(prompt, context=context, stream=True)
    t0 = now_ns()
    lad.info(
        "relay.stream.start",
        extra={"content_type": content_type, "model": req.model, "prompt_chars": len(prompt)},
    )

    fragments = client.stream(req)
    try:
        first = await anext(fragments, None)
    except BaseException:
        await fragments.aclose()
        raise
    lad.info("relay.stream.first_fragment", extra={"ttff_ms": ms_since(t0)})
    return _forward(first, fragments, lad, t0)


async def _forward(
    first: Fragment | None,
    rest: AsyncIterator[Fragment],
    lad: logging.LoggerAdapter,
    t0: int,
) -> AsyncIterator[bytes]:
    forwarded = 0
    outcome = "incomplete"
    try:
        frag = first
        while frag is not None:
            line = _wire(frag)
            if line is not None:
                forwarded += 1
                yield line
            if frag.is_final:
                break
            frag = await anext(rest, None)
        outcome = "complete"
    except UpstreamMidStreamFailure as e:
        outcome = "failed"
        lad.error(
            "relay.stream.upstream_failed",
            extra={"error": str(e)[:200], "forwarded": forwarded},
        )
        yield encode_record(ErrorRecord(STREAM_BROKEN_TEXT))
    finally:
        lad.info(
            "relay.stream.done",
            extra={"outcome": outcome, "forwarded": forwarded, "dur_ms": ms_since(t0)},
        )
        await rest.aclose()
