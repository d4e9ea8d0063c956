# ------------------------------------------------------------
# Module: h5p_assist/llm/client/ollama_options.py
# Purpose: Normalize/sanitize Ollama sampling options; enforce sane bounds.
# ------------------------------------------------------------

from __future__ import annotations

import logging

from h5p_assist.llm.types import SamplingOptions


def sanitize_options(
    opts: dict | None, lad: logging.LoggerAdapter | logging.Logger | None = None
) -> SamplingOptions:
    """Coerce string/None values to numbers; clamp ranges; drop unknown keys."""
    opts = dict(opts or {})
    out: SamplingOptions = {}

    def _as_float(k: str, default: float, hi: float):
        v = opts.get(k)
        if isinstance(v, str):
            try:
                v = float(v)
            except ValueError:
                v = default
        if v is None:
            v = default
        return min(max(float(v), 0.0), hi)

    out["temperature"] = _as_float("temperature", 0.7, 2.0)
    out["top_p"] = _as_float("top_p", 0.9, 1.0)

    # top_k is optional; only forward a usable non-negative int
    if opts.get("top_k") is not None:
        try:
            top_k = int(opts["top_k"])
        except (TypeError, ValueError):
            top_k = -1
        if top_k >= 0:
            out["top_k"] = top_k

    if lad:
        lad.debug(
            "ollama.options",
            extra={
                "temperature": out["temperature"],
                "top_p": out["top_p"],
                "has_top_k": "top_k" in out,
            },
        )
    return out
