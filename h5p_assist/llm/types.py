# ------------------------------------------------------------
# Module: h5p_assist/llm/types.py
# Purpose: Value types for generation requests, results, and streamed fragments.
# ------------------------------------------------------------

"""Value types exchanged with the Ollama `/api/generate` endpoint.

Responsibilities
----------------
- Define the immutable `GenerationRequest` and render its JSON payload.
- Define `GenerationResult` for the non-streaming reply.
- Define `Fragment` (one incremental piece of output) and `ErrorRecord`.

Notes
-----
- The context token is opaque; it is passed through untouched.
- Unset optional fields are omitted from the payload, never sent as null.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, NotRequired, TypedDict


class SamplingOptions(TypedDict, total=False):
    """Subset of Ollama sampling options this project sets."""

    temperature: float
    top_p: float
    top_k: int


class GeneratePayload(TypedDict):
    """JSON body for POST /api/generate."""

    model: str
    prompt: str
    stream: bool
    context: NotRequired[list[int]]
    options: NotRequired[SamplingOptions]


@dataclass(frozen=True)
class GenerationRequest:
    model: str
    prompt: str
    context: tuple[int, ...] | None = None
    options: SamplingOptions = field(default_factory=dict)
    stream: bool = True

    def with_model(self, model: str) -> GenerationRequest:
        return replace(self, model=model)

    def to_payload(self) -> GeneratePayload:
        payload: GeneratePayload = {
            "model": self.model,
            "prompt": self.prompt,
            "stream": self.stream,
        }
        if self.context:
            payload["context"] = list(self.context)
        if self.options:
            payload["options"] = dict(self.options)  # type: ignore[typeddict-item]
        return payload


@dataclass(frozen=True)
class GenerationResult:
    """Full reply from a non-streaming generate call."""

    model: str
    created_at: str
    response: str
    context: tuple[int, ...] | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> GenerationResult:
        ctx = data.get("context")
        return cls(
            model=str(data.get("model") or ""),
            created_at=str(data.get("created_at") or ""),
            response=str(data.get("response") or ""),
            context=tuple(ctx) if isinstance(ctx, list) else None,
        )


@dataclass(frozen=True)
class Fragment:
    """One decoded unit of streamed output. Arrival order is concatenation order."""

    delta: str
    context: tuple[int, ...] | None = None
    is_final: bool = False


@dataclass(frozen=True)
class ErrorRecord:
    """Inline `{"error": ...}` record; terminates the stream it appears in."""

    message: str
