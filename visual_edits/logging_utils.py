# visual_edits/logging_utils.py
from __future__ import annotations
import logging
import logging.handlers as lh
import os
import sys
import json
import datetime
from typing import Optional


class JsonFormatter(logging.Formatter):
    """Compact single-line JSON formatter for logs.

    Emits objects with keys: ts (ISO8601 UTC), level, module, msg, meta.
    meta is taken from record.__dict__.get('meta') and enriched with common fields
    that may be attached to LogRecord (path, file_name, status, ...).
    """

    def _safe(self, v):
        # Ensure value is JSON serializable; fallback to str()
        try:
            json.dumps(v)
            return v
        except (TypeError, ValueError):
            return str(v)

    def format(self, record: logging.LogRecord) -> str:
        rec_ts = datetime.datetime.now(datetime.timezone.utc).isoformat()
        meta = {}
        raw_meta = record.__dict__.get("meta")
        if isinstance(raw_meta, dict):
            meta.update({k: self._safe(v) for k, v in raw_meta.items()})

        for k in ("request_id", "file_name", "path", "status", "error_code", "latency_ms"):
            if k in record.__dict__ and record.__dict__[k] is not None:
                meta[k] = self._safe(record.__dict__[k])

        payload = {
            "ts": rec_ts,
            "level": record.levelname.lower(),
            "module": record.name,
            "msg": record.getMessage(),
            "meta": meta,
        }
        if record.exc_info:
            payload["meta"]["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, separators=(",", ":"))


def configure_logging(
    level: str = "INFO",
    structured: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """Configure global logging for the gateway.

    Idempotent: repeated calls update formatters instead of stacking handlers.
    `structured` selects compact JSON lines; tests may call
    configure_logging(structured=False) for readable output.
    """
    lg = logging.getLogger()
    lg.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    json_fmt = JsonFormatter()
    human_fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    fmt = json_fmt if structured else human_fmt

    if log_file:
        log_path = os.path.abspath(log_file)
        add_fh = True
        for h in lg.handlers:
            base = getattr(h, "baseFilename", None)
            if base and os.path.abspath(base) == log_path:
                add_fh = False
                h.setFormatter(fmt)
                break
        if add_fh:
            os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
            fh = lh.RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
            fh.setFormatter(fmt)
            lg.addHandler(fh)

    # Stream handler for stdout - avoid duplicates bound to stdout
    add_sh = True
    for h in lg.handlers:
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout:
            add_sh = False
            h.setFormatter(fmt)
            break
    if add_sh:
        sh = logging.StreamHandler(sys.stdout)
        sh.setFormatter(fmt)
        lg.addHandler(sh)

    # uvicorn's access log duplicates what the gateway already records per request.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
