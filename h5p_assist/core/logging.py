# ------------------------------------------------------------
# Module: h5p_assist/core/logging.py
# Purpose: Centralized configuration for unified logging across the relay stack.
# ------------------------------------------------------------

"""Configure unified, stdout-based logging for the suggestion relay.

Responsibilities
----------------
- Initialize a single consistent logging setup at app startup.
- Respect env-based toggles from `settings` (log level, mute, access logs).
- Align Uvicorn's loggers with the app-level configuration.

Notes
-----
- `basicConfig` is idempotent unless `force=True`.
- Use `MUTE_ALL_LOGS` to silence all logs for CI or benchmarks.
"""

import logging
import sys

from h5p_assist.core.config import Settings, settings as _settings


def configure_logging(settings: Settings = _settings) -> None:
    """Initialize global logging once at startup.

    Notes
    -----
    - Hard-mutes all logs if `MUTE_ALL_LOGS` is set.
    - Keeps Uvicorn loggers aligned with app-level log level.
    """
    # Hard mute: disables ALL logging below CRITICAL globally.
    if settings.MUTE_ALL_LOGS:
        logging.disable(logging.CRITICAL)
        return

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stdout,
    )

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(settings.LOG_LEVEL)

    # Optionally suppress noisy per-request access logs.
    if not settings.ACCESS_LOG:
        logging.getLogger("uvicorn.access").disabled = True
