from __future__ import annotations

import logging

from coupon_engine.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger."""
    root = logging.getLogger()
    resolved = (level or settings.LOG_LEVEL).upper()
    root.setLevel(getattr(logging, resolved, logging.INFO))

    if any(getattr(h, "_coupon_engine", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._coupon_engine = True  # type: ignore[attr-defined]
    root.addHandler(handler)
