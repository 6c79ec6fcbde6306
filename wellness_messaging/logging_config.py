import logging
import sys

from wellness_messaging.config import LOG_FORMAT, LOG_LEVEL

_CONFIGURED = False


def setup_logging(level: str = LOG_LEVEL) -> logging.Logger:
    global _CONFIGURED
    root = logging.getLogger()
    if not _CONFIGURED:
        # Keep third-party libraries quiet; our package logs at `level`.
        root.setLevel(logging.WARNING)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _CONFIGURED = True

    logging.getLogger("wellness_messaging").setLevel(getattr(logging, level.upper(), logging.INFO))
    return root
