from __future__ import annotations
import logging, json, os, sys, datetime
from typing import Any, Dict, TextIO
from .logctx import ctx_snapshot

LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "lvl": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for attr in ("pathname","lineno","funcName"):
            base[attr] = getattr(record, attr, None)
        # Contextvars snapshot (request_id, candidate)
        base.update(ctx_snapshot())
        # log.info("event", {...}) leaves the dict itself in record.args
        if isinstance(record.args, dict):
            base.update(record.args)
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False, default=str)

def setup_json_logging(level: str | None = None, stream: TextIO | None = None) -> None:
    root = logging.getLogger()
    root.setLevel((level or LEVEL).upper())
    for h in list(root.handlers):
        root.removeHandler(h)
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"modelpool.{name}")
