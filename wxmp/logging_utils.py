"""
Structured JSON logging.

Every record carries the request id and, once the callback URL is resolved,
the official account id, so the lines of one push can be grepped together.
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from wxmp.metrics import record_http_request


request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
account_ctx: ContextVar[Optional[str]] = ContextVar("account", default=None)

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


class ExchangeJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines with ISO-8601 UTC `ts`, `level` and the exchange context."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("ts"):
            log_record["ts"] = datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        log_record["level"] = record.levelname
        for key, var in (("request_id", request_id_ctx), ("account", account_ctx)):
            value = var.get()
            if value and key not in log_record:
                log_record[key] = value


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Send all logs, uvicorn's included, to stdout as JSON.

    Args:
        log_level: Logging level name
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ExchangeJsonFormatter("%(ts)s %(level)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in UVICORN_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.propagate = False
    # RequestLoggingMiddleware writes the access line
    logging.getLogger("uvicorn.access").disabled = True

    return root


def bind_account(account: Optional[str]) -> None:
    """Tag the remaining log records of this request with the account id."""
    account_ctx.set(account)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    One log line per request, and the HTTP metrics.

    Log keys: method, path, status, latency_ms, plus the exchange fields set
    with log_exchange_data (account, msg_type, msg_id, result).
    """

    access_logger = logging.getLogger("wxmp.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        request_token = request_id_ctx.set(request_id)
        account_token = account_ctx.set(None)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            latency = time.perf_counter() - started
            response.headers["X-Request-ID"] = request_id

            route = request.scope.get("route")
            if request.url.path != "/metrics":
                record_http_request(
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    latency_seconds=latency,
                    route=getattr(route, "path", None),
                )

            fields = {
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": round(latency * 1000, 2),
                **getattr(request.state, "exchange_log_data", {}),
            }
            level = logging.ERROR if response.status_code >= 500 else (
                logging.WARNING if response.status_code >= 400 else logging.INFO
            )
            self.access_logger.log(level, "Request completed", extra=fields)
            return response
        finally:
            account_ctx.reset(account_token)
            request_id_ctx.reset(request_token)


def log_exchange_data(
    request: Request,
    account: Optional[str] = None,
    msg_type: Optional[str] = None,
    msg_id: Optional[str] = None,
    result: Optional[str] = None,
):
    """
    Attach exchange fields to the request log line.

    Args:
        request: FastAPI request object
        account: Account id from the callback URL
        msg_type: Parsed message type (event type for events)
        msg_id: Parsed message id
        result: Exchange outcome
    """
    values = {"account": account, "msg_type": msg_type, "msg_id": msg_id, "result": result}
    request.state.exchange_log_data = {key: value for key, value in values.items() if value is not None}
