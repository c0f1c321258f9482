"""Root logger configuration for scripts and workers embedding the compiler."""

import logging

from .config import get_settings


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once, at the configured level."""
    resolved = (level or get_settings().LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger(__name__).debug(f"[STARTUP] Logging configured at {resolved}")
