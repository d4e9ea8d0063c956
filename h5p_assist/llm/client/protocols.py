# ------------------------------------------------------------
# Module: h5p_assist/llm/client/protocols.py
# Purpose: Minimal protocol for upstream generation clients (one-shot and streaming).
# ------------------------------------------------------------

"""Typed protocol for upstream generation clients.

Responsibilities
----------------
- Provide a standard `generate(request)` contract for full replies.
- Provide a standard `stream(request)` contract yielding ordered `Fragment`s.
- Let the relay and its tests swap clients without binding to Ollama.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Protocol

from h5p_assist.llm.types import Fragment, GenerationRequest, GenerationResult


class LLMClient(Protocol):
    model: str

    def request(
        self, prompt: str, *, context: tuple[int, ...] | None = None, stream: bool = True
    ) -> GenerationRequest: ...

    """Build a request carrying the client's model and sampling options."""

    async def generate(self, request: GenerationRequest) -> GenerationResult: ...

    """Return the complete reply; raise `UpstreamUnreachable` on failure."""

    def stream(self, request: GenerationRequest) -> AsyncGenerator[Fragment, None]: ...

    """Yield fragments in arrival order.

    Notes
    -----
    - Failures before the first fragment raise `UpstreamUnreachable`.
    - Failures after it raise `UpstreamMidStreamFailure`.
    - Closing the iterator early must release the upstream connection.
    """

    async def aclose(self) -> None: ...
