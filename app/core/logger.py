# app/core/logger.py
from __future__ import annotations

"""
CinePass — Logging (Loguru)
---------------------------
- Pretty console logs by default; JSON lines via `LOG_JSON=1`
- `request_id` correlation from RequestIDMiddleware (bound as extra)
- Every stdlib logger (`logging.getLogger("payments")`, uvicorn, apscheduler,
  sqlalchemy, ...) is routed into Loguru through `InterceptHandler`
- Optional rotating file sink

Env
---
LOG_LEVEL=INFO|DEBUG|WARNING|ERROR (default: INFO)
LOG_JSON=1           JSON output
LOG_TO_FILE=1        write `${LOG_DIR}/${LOG_FILE}` with rotation (default: off)
LOG_DIR=logs
LOG_FILE=app.log
LOG_ROTATION=10 MB
APP_DEBUG=1          backtrace/diagnose on the console sink

Call `configure_logging()` once at startup (app factory, scripts). It is
idempotent.
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

# ─────────────────────────────────────────────────────────────
# ⚙️ Env
# ─────────────────────────────────────────────────────────────
_TRUTHY = {"1", "true", "yes", "on"}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "0").lower() in _TRUTHY
APP_DEBUG = os.getenv("APP_DEBUG", "0").lower() in _TRUTHY
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "0").lower() in _TRUTHY
LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
LOG_FILE = os.getenv("LOG_FILE", "app.log")
LOG_ROTATION = os.getenv("LOG_ROTATION", "10 MB")

_configured = False


# ─────────────────────────────────────────────────────────────
# 🧾 Formatters
# ─────────────────────────────────────────────────────────────
def _fmt_pretty(record) -> str:
    record["extra"].setdefault("request_id", "N/A")
    safe_name = record["name"].replace("<", "[").replace(">", "]")
    return (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level:<8}</level> | "
        f"<cyan>{safe_name}</cyan>:<cyan>{{line}}</cyan> - "
        "<level>{message}</level> | request_id={extra[request_id]}\n{exception}"
    )


def _serialize(record) -> str:
    """One JSON line per record; extras are merged without clobbering known keys."""
    payload: Dict[str, Any] = {
        "time": record["time"].strftime("%Y-%m-%dT%H:%M:%S.%f%z"),
        "level": record["level"].name,
        "logger": record["extra"].get("logger", record["name"]),
        "line": record["line"],
        "message": record["message"],
        "request_id": record["extra"].get("request_id", "N/A"),
    }
    for k, v in record["extra"].items():
        payload.setdefault(k, v if isinstance(v, (str, int, float, bool, type(None))) else str(v))
    if record["exception"] is not None:
        payload["exception"] = str(record["exception"].value)
    return json.dumps(payload, ensure_ascii=False)


def _patch_json(record) -> None:
    record["extra"]["serialized"] = _serialize(record)


# ─────────────────────────────────────────────────────────────
# 🔁 Intercept stdlib logging → Loguru
# ─────────────────────────────────────────────────────────────
class InterceptHandler(logging.Handler):
    """Route standard logging records into Loguru, keeping the logger name."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Any = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that issued the logging call.
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(logger=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


# ─────────────────────────────────────────────────────────────
# 📤 Setup
# ─────────────────────────────────────────────────────────────
def configure_logging(level: str | None = None) -> None:
    """Install Loguru sinks and take over the stdlib root logger."""
    global _configured
    if _configured:
        return

    lvl = (level or LOG_LEVEL).upper()
    logger.remove()
    logger.configure(extra={"request_id": "N/A"})

    if LOG_JSON:
        logger.configure(patcher=_patch_json)
        fmt: Any = "{extra[serialized]}\n"
    else:
        fmt = _fmt_pretty

    logger.add(sys.stdout, level=lvl, format=fmt, enqueue=True, backtrace=APP_DEBUG, diagnose=APP_DEBUG)

    if LOG_TO_FILE:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(LOG_DIR / LOG_FILE),
            rotation=LOG_ROTATION,
            level=lvl,
            format=fmt,
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=lvl, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "apscheduler"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False
    # SQL echo is noisy; only warnings unless explicitly debugging.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True
    logger.debug("Logging configured | level={} json={} file={}", lvl, LOG_JSON, LOG_TO_FILE)


__all__ = ["logger", "configure_logging", "InterceptHandler"]
