# leadsheet/logging_config.py

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_HANDLER: Optional[logging.Handler] = None


def configure_logging(level: Union[int, str, None] = None) -> logging.Logger:
    """Attach one stderr handler to the ``leadsheet`` logger. Safe to call twice.

    Level falls back to LEADSHEET_LOG_LEVEL, then INFO.
    """
    global _HANDLER

    if level is None:
        level = os.getenv("LEADSHEET_LOG_LEVEL", "INFO").upper()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("leadsheet")
    root.setLevel(level)

    if _HANDLER is None:
        _HANDLER = logging.StreamHandler(sys.stderr)
        _HANDLER.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(_HANDLER)
    return root
