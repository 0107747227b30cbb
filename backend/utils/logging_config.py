import contextvars
import logging
import logging.handlers
import time
from pathlib import Path
from typing import Optional

from core.config import settings
from core.security import get_subject_from_unverified_token
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

LOG_FORMAT = "%(levelname)s - %(asctime)s - %(subject_id)s - %(api)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Which sinks each logger writes to. "" is the root logger.
LOGGER_SINKS = {
    "": ("app", "error", "console"),
    "uvicorn": ("app", "error", "console"),
    "uvicorn.error": ("app", "error", "console"),
    "uvicorn.access": ("access", "console"),
    "fastapi": ("app", "error", "console"),
    "creditodds.audit": ("audit", "error", "console"),
}

subject_var = contextvars.ContextVar("subject_id", default="-")
api_var = contextvars.ContextVar("api", default="-")


def map_log_level(level_name: str) -> int:
    level = logging.getLevelName((level_name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.subject_id = subject_var.get()
        record.api = api_var.get()
        return True


def _daily_file(path: Path, level: int) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(path),
        when="midnight",
        backupCount=max(int(settings.LOG_TTL_DAYS), 0),
        encoding="utf-8",
        utc=True,
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    return handler


def _make_sinks(level: int, log_dir: Path) -> dict[str, logging.Handler]:
    sinks = {
        "app": _daily_file(log_dir / "app.log", level),
        "access": _daily_file(log_dir / "access.log", level),
        "audit": _daily_file(log_dir / "audit.log", level),
        "error": _daily_file(log_dir / "error.log", logging.WARNING),
        "console": logging.StreamHandler(),
    }
    sinks["console"].setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    context = ContextFilter()
    for handler in sinks.values():
        handler.setFormatter(formatter)
        handler.addFilter(context)
    return sinks


def _attach(logger: logging.Logger, handlers: list[logging.Handler], level: int) -> None:
    for old in list(logger.handlers):
        logger.removeHandler(old)
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)


def configure_logging(app_logger_name: Optional[str] = None) -> logging.Logger:
    """Route application, server, access and audit logs to daily files.

    Files rotate at UTC midnight and the last LOG_TTL_DAYS are kept. Warnings
    from every logger are also copied to error.log.
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = map_log_level(settings.LOG_LEVEL)
    sinks = _make_sinks(level, log_dir)

    app_name = app_logger_name or "creditodds"
    routes = dict(LOGGER_SINKS)
    routes.setdefault(app_name, LOGGER_SINKS[""])

    for name, sink_names in routes.items():
        target = logging.getLogger(name or None)
        if name:
            target.propagate = False
        _attach(target, [sinks[sink] for sink in sink_names], level)

    return logging.getLogger(app_name)


request_logger = logging.getLogger("creditodds.requests")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind the caller's subject id and API path to log records for the request."""

    async def dispatch(self, request: Request, call_next):
        subject_id = "-"
        scheme, _, token = (request.headers.get("authorization") or "").partition(" ")
        if scheme == "Bearer" and token:
            subject_id = get_subject_from_unverified_token(token) or "-"

        subject_token = subject_var.set(subject_id)
        api_token = api_var.set(f"{request.method} {request.url.path}")
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            request_logger.info(f"response status={response.status_code} in {elapsed_ms:.2f} ms")
            return response
        finally:
            subject_var.reset(subject_token)
            api_var.reset(api_token)
