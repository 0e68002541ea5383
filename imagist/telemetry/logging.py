# imagist/telemetry/logging.py
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any, Dict, Mapping, MutableMapping, Optional, Tuple

from imagist.middleware.request_id import get_request_id

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def _utc(ts: float) -> str:
    stamp = datetime.fromtimestamp(ts, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _plain(value: Any) -> Any:
    """Reduce a log field to something json.dumps accepts."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return str(value)


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line: ts, level, logger, message, request_id when a
    request is in flight, then every ``extra`` field (source, host, mime...).
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = {
            k: v
            for k, v in record.__dict__.items()
            if k not in _RECORD_ATTRS and not k.startswith("_")
        }
        request_id = fields.pop("request_id", None) or get_request_id()

        payload: Dict[str, Any] = {
            "ts": _utc(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if request_id:
            payload["request_id"] = request_id
        payload.update(_plain(fields))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


_configured = False


def configure_root_logging(
    level: int | str = "INFO",
    *,
    json_lines: bool = True,
    stream: Optional[IO[str]] = None,
) -> None:
    """Install a single stdout handler on the root logger (once per process)."""
    global _configured
    if _configured:
        return

    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    root.setLevel(level if isinstance(level, int) else logging.INFO)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        JsonFormatter()
        if json_lines
        else logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root.addHandler(handler)
    _configured = True


class ContextAdapter(logging.LoggerAdapter):
    """Adds bound fields to every call; fields passed per call take precedence."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def bind(logger: Optional[logging.Logger] = None, **context: Any) -> ContextAdapter:
    """
    Logger with fields attached to every line, e.g. the raw source of a request:

        log = bind(logging.getLogger(__name__), source="/cdn.example.com/a.jpg")
        log.info("fetching")
    """
    return ContextAdapter(logger or logging.getLogger(), dict(context))


__all__ = ["JsonFormatter", "configure_root_logging", "ContextAdapter", "bind"]
