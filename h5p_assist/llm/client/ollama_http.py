# ------------------------------------------------------------
# Module: h5p_assist/llm/client/ollama_http.py
# Purpose: URL normalization and error classification for the Ollama client.
# ------------------------------------------------------------

from __future__ import annotations

DEFAULT_BASE = "http://127.0.0.1:11434"
DEFAULT_PORT = 11434

# Upstream messages that mean "this model cannot run here; try the fallback".
FALLBACK_MARKERS = (
    "out of memory",
    "oom",
    "not enough vram",
    "no such model",
    "not found, try pulling",
)


def base_url(val: str | None) -> str:
    """Accept `http(s)://host[:port]`, `host:port`, or a bare host; drop trailing slashes."""
    v = (val or "").strip().rstrip("/")
    if not v:
        return DEFAULT_BASE
    if v.startswith(("http://", "https://")):
        return v
    if ":" in v:
        return f"http://{v}"
    return f"http://{v}:{DEFAULT_PORT}"


def generate_url(base: str) -> str:
    return f"{base_url(base)}/api/generate"


def is_oom(err: BaseException | str) -> bool:
    s = str(err).lower()
    return any(marker in s for marker in FALLBACK_MARKERS)
