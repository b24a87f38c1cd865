from __future__ import annotations
import logging

from app.core import config
from app.core.tenant import get_request_id


class RequestIdFilter(logging.Filter):
    """Adds ``record.request_id`` so the format string can reference it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure the root logger once for the console process.

    Existing root handlers are replaced so repeated calls (tests, reloads)
    do not duplicate output.
    """
    root = logging.getLogger()
    level_name = (level or config.LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt or config.LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    # httpx logs every request at INFO; the middleware already covers that.
    logging.getLogger("httpx").setLevel(logging.WARNING)
