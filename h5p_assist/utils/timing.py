# ------------------------------------------------------------
# Module: h5p_assist/utils/timing.py
# Purpose: Millisecond timing for first-fragment latency and one-shot generate calls.
# ------------------------------------------------------------

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

Log = logging.Logger | logging.LoggerAdapter


def now_ns() -> int:
    return time.perf_counter_ns()


def ms_since(t0_ns: int) -> float:
    """Elapsed milliseconds since `t0_ns` (from `now_ns()`), rounded to 0.1 ms."""
    return round((now_ns() - t0_ns) / 1_000_000.0, 1)


@contextmanager
def log_timer(event: str, logger: Log | None = None, **fields):
    """Emit `<event> start`, then `<event> ok` or `<event> failed` with `dur_ms`.

    Usage:
        with log_timer("relay.suggestions", lad, model=req.model):
            result = await client.generate(req)
    """
    log = logger or logging.getLogger(__name__)
    t0 = now_ns()
    log.info("%s start", event, extra=fields)
    try:
        yield
    except Exception as e:
        log.error(
            "%s failed",
            event,
            extra={**fields, "dur_ms": ms_since(t0), "error": f"{type(e).__name__}: {e}"[:200]},
        )
        raise
    log.info("%s ok", event, extra={**fields, "dur_ms": ms_since(t0)})
