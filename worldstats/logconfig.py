import logging
from typing import Optional

from .config import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging once per process from settings."""
    global _configured
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level, logging.INFO)
    if not _configured:
        logging.basicConfig(level=level, format=LOG_FORMAT)
        # werkzeug request lines are noisy at DEBUG
        logging.getLogger("werkzeug").setLevel(max(level, logging.INFO))
        logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))
        _configured = True
    logging.getLogger("worldstats").setLevel(level)
