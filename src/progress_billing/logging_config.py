"""Logging setup."""

from __future__ import annotations

import logging

from progress_billing.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class CorrelationFilter(logging.Filter):
    """Make sure every record carries a correlation_id attribute."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the process."""
    level = level or get_settings().log_level
    root = logging.getLogger()
    if not any(getattr(h, "_progress_billing", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(LOG_FORMAT + " correlation_id=%(correlation_id)s")
        )
        handler.addFilter(CorrelationFilter())
        handler._progress_billing = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level)
