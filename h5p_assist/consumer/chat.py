# ------------------------------------------------------------
# Module: h5p_assist/consumer/chat.py
# Purpose: Client-side stream consumer folding relay records into one growing message.
# ------------------------------------------------------------

"""Streaming suggestion chat against the relay's `/suggestions/stream` endpoint.

Responsibilities
----------------
- Keep an ordered, append-only message log (user echo + assistant reply).
- Drive one request/response cycle at a time; reject concurrent submits.
- Read the response body chunk by chunk through a cancellable `StreamHandle`,
  reassemble lines, and fold each record into the open assistant message.
- Skip malformed lines; turn transport failures into a visible message state.
- Cancel on `stop()` and on teardown.

Notes
-----
- States: IDLE → SENDING → STREAMING → CLOSING → IDLE, with ERRORED → IDLE on failure.
- The only await inside the fold loop is `StreamHandle.read()`.
- A context token from a final record is sent with the next submit.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import aclosing
from enum import Enum

import httpx

from h5p_assist.consumer.messages import Message, MessageStatus
from h5p_assist.core.config import Settings, settings as _settings
from h5p_assist.llm.types import ErrorRecord
from h5p_assist.stream.errors import (
    Cancelled,
    MalformedFragment,
    RequestRejectedConcurrent,
    UpstreamMidStreamFailure,
    UpstreamUnreachable,
)
from h5p_assist.stream.framing import LineAssembler, fold_line
from h5p_assist.stream.handle import StreamHandle
from h5p_assist.utils.logging_extras import log_adapter, new_cid

logger = logging.getLogger(__name__)

STREAM_PATH = "/h5p/chat/suggestions/stream"


class ChatState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    CLOSING = "closing"
    ERRORED = "errored"


def _relay_error(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return f"relay status {resp.status_code}"
    if isinstance(data, dict) and data.get("error"):
        return f"relay status {resp.status_code}: {data['error']}"
    return f"relay status {resp.status_code}"


class SuggestionChat:
    """One editor chat panel bound to an H5P content type."""

    def __init__(
        self,
        content_type: str,
        *,
        relay_url: str | None = None,
        http: httpx.AsyncClient | None = None,
        on_update: Callable[[Message], None] | None = None,
        settings: Settings = _settings,
    ):
        self.content_type = content_type
        base = (relay_url or settings.RELAY_URL).rstrip("/")
        self.url = f"{base}{settings.API_PREFIX}{STREAM_PATH}"
        self.on_update = on_update
        self.last_error: Exception | None = None

        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(
                settings.RELAY_READ_TIMEOUT_S, connect=settings.RELAY_CONNECT_TIMEOUT_S
            )
        )
        self._messages: list[Message] = []
        self._state = ChatState.IDLE
        self._handle: StreamHandle | None = None
        self._context: tuple[int, ...] | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is not ChatState.IDLE

    @property
    def context(self) -> tuple[int, ...] | None:
        return self._context

    async def submit(self, text: str) -> Message:
        """Send `text` and stream the reply into a new assistant message.

        Raises `RequestRejectedConcurrent` while another cycle is in flight and
        `ValueError` for blank text; neither touches the log. Upstream failures
        and cancellation are absorbed into the returned message's status.
        """
        if self.busy:
            raise RequestRejectedConcurrent("a suggestion request is already in flight")
        if not text.strip():
            raise ValueError("cannot submit an empty message")

        handle = StreamHandle()
        self._handle = handle
        self._state = ChatState.SENDING
        self._idle.clear()
        self.last_error = None
        cid = new_cid()
        lad = log_adapter(logger, cid)

        self._messages.append(Message.user(text))
        reply = Message.placeholder()
        self._messages.append(reply)
        lad.info("chat.submit", extra={"content_type": self.content_type, "chars": len(text)})

        try:
            await self._run(handle, text, reply, cid)
            self._state = ChatState.CLOSING
            reply.close(MessageStatus.COMPLETE)
            lad.info("chat.done", extra={"chars": len(reply.text)})
        except Cancelled:
            self._state = ChatState.CLOSING
            reply.close(MessageStatus.CANCELLED)
            lad.info("chat.cancelled", extra={"chars": len(reply.text)})
        except (UpstreamUnreachable, UpstreamMidStreamFailure) as e:
            self._state = ChatState.ERRORED
            self.last_error = e
            reply.fail(str(e))
            lad.error("chat.failed", extra={"error": str(e)[:200], "status": reply.status.value})
        except asyncio.CancelledError:
            # owner task torn down mid-cycle
            if reply.is_open:
                reply.close(MessageStatus.CANCELLED)
            raise
        except Exception as e:
            # e.g. a failing on_update; the reply must not stay open
            self._state = ChatState.ERRORED
            self.last_error = e
            if reply.is_open:
                reply.fail(f"{type(e).__name__}: {e}")
            lad.exception("chat.crashed", extra={"status": reply.status.value})
            raise
        finally:
            handle.finish()
            self._handle = None
            self._state = ChatState.IDLE
            self._idle.set()

        self._render(reply)
        return reply

    def stop(self) -> bool:
        """Cancel the in-flight request, if any. Safe to call at any time."""
        handle = self._handle
        if handle is None or not handle.active:
            return False
        return handle.cancel()

    async def aclose(self) -> None:
        """Teardown: cancel, wait for the cycle to settle, release the HTTP client."""
        self.stop()
        await self._idle.wait()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> SuggestionChat:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _render(self, reply: Message) -> None:
        if self.on_update is not None:
            self.on_update(reply)

    async def _run(self, handle: StreamHandle, text: str, reply: Message, cid: str) -> None:
        body: dict = {"contentType": self.content_type, "description": text}
        if self._context:
            body["context"] = list(self._context)
        request = self._http.build_request(
            "POST", self.url, json=body, headers={"x-correlation-id": cid}
        )
        try:
            resp = await handle.race(
                self._http.send(request, stream=True),
                on_discard=lambda late: late.aclose(),
            )
        except httpx.HTTPError as e:
            raise UpstreamUnreachable(f"{type(e).__name__}: {e}") from e

        try:
            if resp.is_error:
                await handle.race(resp.aread())
                raise UpstreamUnreachable(_relay_error(resp))
            self._state = ChatState.STREAMING
            await self._consume(handle, resp, reply)
        finally:
            await resp.aclose()

    async def _consume(self, handle: StreamHandle, resp: httpx.Response, reply: Message) -> None:
        assembler = LineAssembler()
        received = 0
        try:
            async with aclosing(resp.aiter_bytes()) as chunks:
                while True:
                    chunk = await handle.read(chunks)
                    if chunk is None:
                        break
                    received += len(chunk)
                    if self._apply(assembler.feed(chunk), handle, reply):
                        return
            self._apply(assembler.flush(), handle, reply)
        except (httpx.HTTPError, UnicodeDecodeError) as e:
            detail = f"{type(e).__name__}: {e}"
            if received == 0:
                raise UpstreamUnreachable(detail) from e
            raise UpstreamMidStreamFailure(detail) from e

    def _apply(self, lines: list[str], handle: StreamHandle, reply: Message) -> bool:
        """Fold complete lines into `reply`; True once a final record was applied."""
        for line in lines:
            if handle.cancelled:
                raise Cancelled()
            text, outcome = fold_line(reply.text, line)
            if outcome is None:
                continue
            if isinstance(outcome, MalformedFragment):
                logger.warning("chat.malformed_line", extra={"reason": outcome.reason})
                continue
            if isinstance(outcome, ErrorRecord):
                if reply.text:
                    raise UpstreamMidStreamFailure(outcome.message)
                raise UpstreamUnreachable(outcome.message)
            if text != reply.text:
                reply.advance(text)
                self._render(reply)
            if outcome.is_final:
                if outcome.context:
                    self._context = outcome.context
                return True
        return False
