"""Process-wide logging configuration."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once with a single stdout handler.

    Calling it again only updates the level, so the entrypoint and the app
    lifespan can both call it safely.

    Args:
        level: Log level name such as ``"DEBUG"`` or ``"INFO"``. Unknown
            names fall back to INFO.
    """
    root = logging.getLogger()
    lvl = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    root.setLevel(lvl)
    if getattr(root, "_tileserver_configured", False):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root._tileserver_configured = True  # type: ignore[attr-defined]
