import json
import logging
import os
from typing import Optional

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}

# request-per-line loggers of the HTTP stack used for cart sync
_CHATTY = ("httpx", "httpcore")


class CartLogFormatter(logging.Formatter):
    """`ts | level | logger | message`, tagged with the service name."""

    def __init__(self, service: str = ""):
        prefix = f"[{service}] " if service else ""
        super().__init__(
            fmt=prefix + "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class CartJsonFormatter(logging.Formatter):
    """One JSON object per record; tracebacks go into `exc`."""

    def __init__(self, service: str = ""):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if self.service:
            payload["service"] = self.service
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(
    level: Optional[str] = None,
    fmt: Optional[str] = None,
    service: str = "",
) -> logging.Handler:
    """
    Configure root logging for the cart client and the reference API.
    Env overrides:
      LOG_LEVEL = INFO|DEBUG|...
      LOG_FORMAT = text|json
    Returns the installed handler.
    """
    level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    fmt = (fmt or os.getenv("LOG_FORMAT") or "text").lower()

    log_level = _LEVELS.get(level, logging.INFO)
    formatter = CartJsonFormatter(service) if fmt == "json" else CartLogFormatter(service)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(log_level)

    # Align uvicorn loggers when the reference API is served by it
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.setLevel(log_level)

    # every push/pull would otherwise log a request line at INFO
    for name in _CHATTY:
        logging.getLogger(name).setLevel(log_level if log_level <= logging.DEBUG else logging.WARNING)

    return handler
