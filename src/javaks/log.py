from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "WARNING") -> logging.Logger:
    """Send javaks log records to stderr at ``level``; safe to call repeatedly."""
    root = logging.getLogger("javaks")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, "_javaks", False):
            root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._javaks = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    return root
