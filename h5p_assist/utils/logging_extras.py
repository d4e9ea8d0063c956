# ------------------------------------------------------------
# Module: h5p_assist/utils/logging_extras.py
# Purpose: Provide a helper for contextual logging with correlation IDs.
# ------------------------------------------------------------

"""Logger adapters that attach a request correlation ID.

Responsibilities
----------------
- Add the correlation ID (`cid`) of one relay request or consumer submit to log records.
- Keep per-call `extra=` fields instead of replacing them with the adapter's own.
- Support a missing correlation ID gracefully.
"""

from __future__ import annotations

import logging
import uuid


class _MergingAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def log_adapter(logger: logging.Logger, cid: str | None) -> logging.LoggerAdapter:
    """Return a `LoggerAdapter` that injects an optional correlation ID.

    Example
    -------
    >>> lad = log_adapter(logging.getLogger(__name__), cid="abc123")
    >>> lad.info("relay.stream.start", extra={"content_type": "H5P.Course"})
    # record carries both cid="abc123" and content_type="H5P.Course"
    """
    return _MergingAdapter(logger, {"cid": cid} if cid else {})


def new_cid(header_value: str | None = None) -> str:
    """Reuse an inbound `x-correlation-id` or mint a fresh one."""
    return (header_value or "").strip() or str(uuid.uuid4())
