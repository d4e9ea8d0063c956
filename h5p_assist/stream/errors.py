# ------------------------------------------------------------
# Module: h5p_assist/stream/errors.py
# Purpose: Typed errors for the incremental response protocol.
# ------------------------------------------------------------

"""Exception types shared by the relay and the consumer.

Responsibilities
----------------
- Provide a base `StreamError` for catch-all handling.
- Separate upstream failures before the first fragment from failures after it.
- Surface per-line parse failures as `MalformedFragment` (always recovered locally).
- Surface concurrent submits and user cancellation as distinct, non-fatal kinds.
"""


class StreamError(Exception):
    """Base class for streaming protocol failures."""


class UpstreamUnreachable(StreamError):
    """No usable stream: connect failure, timeout, failure status, or an error before any fragment."""


class UpstreamMidStreamFailure(StreamError):
    """The stream broke after at least one fragment was delivered."""


class MalformedFragment(StreamError):
    """One line could not be parsed as a record."""

    def __init__(self, line: str, reason: str):
        super().__init__(f"{reason}: {line[:80]!r}")
        self.line = line
        self.reason = reason


class RequestRejectedConcurrent(StreamError):
    """A submit arrived while another request was still in flight."""


class Cancelled(StreamError):
    """The stream was aborted by its owner. Not a failure."""
