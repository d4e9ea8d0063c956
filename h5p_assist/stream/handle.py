# ------------------------------------------------------------
# Module: h5p_assist/stream/handle.py
# Purpose: Cancellable handle for one in-flight streaming request.
# ------------------------------------------------------------

"""Single-request cancellation token with a cancellation-aware read.

Responsibilities
----------------
- Own the cancel token of exactly one in-flight request.
- Race any awaitable (connect, next chunk) against that token.
- Make `cancel()` idempotent and safe after natural completion.

Notes
-----
- The token is an `asyncio.Event`; setting it unblocks a suspended `read()`
  immediately instead of waiting for the transport to produce bytes.
- Once cancelled, `read()` never returns data, even if bytes already arrived.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TypeVar

from h5p_assist.stream.errors import Cancelled

T = TypeVar("T")


async def _next_chunk(chunks: AsyncIterator[bytes]) -> bytes | None:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


class StreamHandle:
    """Cancellation slot for one request; create a fresh handle per request."""

    def __init__(self) -> None:
        self._token = asyncio.Event()
        self._released = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._token.is_set()

    @property
    def active(self) -> bool:
        return not (self._released or self._finished)

    def cancel(self) -> bool:
        """Abort the request. Returns False when there was nothing left to cancel."""
        if self._released:
            return False
        self._released = True
        if self._finished:
            return False
        self._token.set()
        return True

    def finish(self) -> None:
        """Mark natural completion; later `cancel()` calls are no-ops."""
        self._finished = True

    async def race(
        self,
        aw: Awaitable[T],
        on_discard: Callable[[T], Awaitable[object]] | None = None,
    ) -> T:
        """Await `aw` unless the token fires first; raise `Cancelled` in that case.

        If `aw` had already produced a value when the token won, the value is
        handed to `on_discard` (e.g. to close a response) before raising.
        """
        if self.cancelled:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise Cancelled()
        work = asyncio.ensure_future(aw)
        stop = asyncio.ensure_future(self._token.wait())
        try:
            await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if not work.done():
                work.cancel()
                # let the aborted read unwind before the caller closes the transport
                await asyncio.wait({work})
        if self.cancelled:
            # exception() also marks a failed read as retrieved
            if not work.cancelled() and work.exception() is None and on_discard is not None:
                await on_discard(work.result())
            raise Cancelled()
        return work.result()

    async def read(self, chunks: AsyncIterator[bytes]) -> bytes | None:
        """Next chunk from `chunks`, `None` at end of stream, `Cancelled` if aborted."""
        return await self.race(_next_chunk(chunks))
