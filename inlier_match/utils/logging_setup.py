"""
Logging configuration shared by the library modules and the driver script.

Library code only calls get_logger(); the driver calls setup_logging() once
with the level/format taken from the YAML config.
"""

import json
import logging
import os
import sys
import time
from typing import Optional

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """
    Compact JSON log lines:
      {"t": 1700000000000, "lvl": "INFO", "name": "mod", "msg": "text", "extra": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: Optional[str] = None, fmt: str = "text", force: bool = False) -> None:
    """
    Configure the root logger once.
    Level precedence: explicit `level`, then env LOG_LEVEL, then INFO.
    """
    root = logging.getLogger()
    if getattr(root, "_inlier_match_configured", False) and not force:
        return

    lvl_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    lvl = getattr(logging, lvl_name, None)
    if not isinstance(lvl, int):
        lvl = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)
    root._inlier_match_configured = True  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
