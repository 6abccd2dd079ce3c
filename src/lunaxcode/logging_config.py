"""Logging setup shared by the CLI and the web app."""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Route application logs to stdout at `level`. Safe to call more than once."""
    root = logging.getLogger()
    root.setLevel(level)

    if not any(getattr(h, "_lunaxcode", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._lunaxcode = True
        root.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
