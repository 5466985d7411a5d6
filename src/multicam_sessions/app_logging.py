"""Logging configuration helpers."""

import logging


class _SessionContextFilter(logging.Filter):
    """Renders the session/device ids passed through ``extra``."""

    def filter(self, record: logging.LogRecord) -> bool:
        parts = [
            f"{key}={getattr(record, key)}"
            for key in ("session_id", "device_id", "code")
            if getattr(record, key, None) is not None
        ]
        record.session_context = f" [{' '.join(parts)}]" if parts else ""
        return True


def configure_logging(level: int = logging.INFO) -> None:
    """Configure application logging with a single stream handler."""
    logger = logging.getLogger("multicam_sessions")
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.addFilter(_SessionContextFilter())
    handler.setFormatter(
        logging.Formatter("%(levelname)s: %(name)s: %(message)s%(session_context)s")
    )
    logger.addHandler(handler)
    logger.propagate = False
