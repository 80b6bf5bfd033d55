"""
Request-scoped logging for the relay.

Each line is one JSON object carrying the request id and the endpoint that
handled it, so an analyze/tts/chat call can be followed from intake to reply.
Payloads and credentials are never logged; callers pass counts and names.
"""
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

SERVICE_NAME = "health-assistant"
QUIET_LOGGERS = ("httpx", "httpcore", "google_genai")
MAX_REQUEST_ID_LENGTH = 64

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_endpoint: ContextVar[Optional[str]] = ContextVar("endpoint", default=None)


def begin_request(request_id: Optional[str] = None) -> str:
    """Open a request scope, reusing the caller's X-Request-ID when it has one."""
    request_id = (request_id or "").strip()[:MAX_REQUEST_ID_LENGTH] or uuid.uuid4().hex[:8]
    _request_id.set(request_id)
    _endpoint.set(None)
    return request_id


def bind_endpoint(name: str) -> None:
    """Tag the rest of this request's log lines with the endpoint name."""
    _endpoint.set(name)


class RelayFormatter(logging.Formatter):
    """JSON lines; event fields sit next to the core keys instead of nested."""

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "service": SERVICE_NAME,
        }
        request_id = _request_id.get()
        if request_id:
            line["request_id"] = request_id
        endpoint = _endpoint.get()
        if endpoint:
            line["endpoint"] = endpoint

        for key, value in (getattr(record, "fields", None) or {}).items():
            line.setdefault(key, value)

        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


class EventLogger:
    """Logs named events with keyword fields: logger.info("analyze", mode="food")."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _emit(self, level: int, event: str, exc_info: bool = False, **fields: Any) -> None:
        self._logger.log(level, event, exc_info=exc_info, extra={"fields": fields})

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit(logging.WARNING, event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit(logging.ERROR, event, **fields)

    def exception(self, event: str, **fields: Any) -> None:
        self._emit(logging.ERROR, event, exc_info=True, **fields)


def configure_logging(level: str = "INFO", json_lines: bool = True) -> None:
    """Route all logging to stderr, as JSON lines unless json_lines is False."""
    handler = logging.StreamHandler(sys.stderr)
    if json_lines:
        handler.setFormatter(RelayFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


_access_log = EventLogger("http")


def request_outcome(status_code: int) -> str:
    if status_code == 413:
        return "body_too_large"
    if status_code >= 500:
        return "failed"
    if status_code >= 400:
        return "rejected"
    return "ok"


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_ip: Optional[str] = None,
) -> None:
    """One access line per request, levelled by outcome."""
    outcome = request_outcome(status_code)
    fields = {
        "method": method,
        "path": path,
        "status": status_code,
        "outcome": outcome,
        "duration_ms": round(duration_ms, 2),
    }
    if client_ip:
        fields["client"] = mask_ip(client_ip)

    if outcome == "failed":
        _access_log.error("request", **fields)
    elif outcome == "ok":
        _access_log.info("request", **fields)
    else:
        _access_log.warning("request", **fields)


def mask_ip(ip: str) -> str:
    """Keep the network prefix only: /16 for IPv4, first group for IPv6."""
    if ip.count(".") == 3:
        first, second = ip.split(".")[:2]
        return f"{first}.{second}.x.x"
    groups = [g for g in ip.split(":") if g]
    if ":" in ip and groups:
        return f"{groups[0]}:x"
    return "x"
