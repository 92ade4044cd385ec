import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import FastAPI, Response, Request, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from wxmp.config import settings, get_account_context
from wxmp.context import AccountContext
from wxmp.dispatcher import HandlerChain, StagedReplyHandler
from wxmp.errors import (
    CryptoError,
    HandlerTimeout,
    MessageCorrupt,
    SignatureMismatch,
    UnknownEventType,
    UnknownMessageType,
    WeixinError,
)
from wxmp.facade import MessageFacade
from wxmp.storage import SessionLocal, init_db, check_db_health, get_db, stage_reply
from wxmp.logging_utils import setup_logging, RequestLoggingMiddleware, bind_account, log_exchange_data
from wxmp.metrics import record_webhook_outcome, get_metrics, get_metrics_content_type
from wxmp.schemas import (
    HealthResponse,
    ErrorResponse,
    StageReplyRequest,
    StageReplyResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    logger.info(f"Serving {len(settings.ACCOUNTS)} account(s)")
    yield


app = FastAPI(
    title="Official Account Gateway",
    description="Callback endpoint for WeChat official account messages and events",
    version="1.0.0",
    lifespan=lifespan,
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Handlers consulted for every pushed message; applications add theirs at startup
app.state.chain = HandlerChain([StagedReplyHandler(SessionLocal, settings.STAGED_REPLY_TTL_SECONDS)])


# =============================================================================
# Helpers
# =============================================================================

# exception type -> (HTTP status, outcome label); first match wins
ERROR_STATUS = (
    (SignatureMismatch, status.HTTP_401_UNAUTHORIZED, "invalid_signature"),
    (MessageCorrupt, status.HTTP_401_UNAUTHORIZED, "corrupt"),
    (CryptoError, status.HTTP_400_BAD_REQUEST, "crypto_error"),
    (UnknownMessageType, status.HTTP_422_UNPROCESSABLE_ENTITY, "unknown_type"),
    (UnknownEventType, status.HTTP_422_UNPROCESSABLE_ENTITY, "unknown_type"),
    (HandlerTimeout, status.HTTP_504_GATEWAY_TIMEOUT, "timeout"),
)


def require_account(request: Request, account_id: str) -> AccountContext:
    ctx = get_account_context(account_id)
    if ctx is None:
        logger.error(f"Unknown account: {account_id}")
        log_exchange_data(request=request, account=account_id, result="unknown_account")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="unknown account"
        )
    bind_account(ctx.account_id)
    return ctx


def reject(request: Request, account_id: str, error: WeixinError) -> HTTPException:
    """Record a failed exchange and build the HTTP error for it."""
    for error_type, status_code, result in ERROR_STATUS:
        if isinstance(error, error_type):
            break
    else:
        status_code, result = status.HTTP_400_BAD_REQUEST, error.code

    logger.error(f"Exchange for {account_id} rejected: {error}")
    record_webhook_outcome(result)
    log_exchange_data(request=request, account=account_id, result=result)
    return HTTPException(status_code=status_code, detail=error.code)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. At least one account is configured
    2. DB is reachable and schema is applied

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.ACCOUNTS:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="No accounts configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.

    Returns metrics in Prometheus text exposition format including:
    - http_requests_total: Total HTTP requests by method, path, status
    - webhook_requests_total: Exchange outcomes by result
    - request_latency_seconds: Request latency histogram
    - handler_latency_seconds: Handler latency histogram
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


# =============================================================================
# Callback Routes
# =============================================================================

@app.get(
    "/{account_id}",
    response_class=Response,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid signature"},
        404: {"model": ErrorResponse, "description": "Unknown account"},
    }
)
async def challenge(
    request: Request,
    account_id: str,
    signature: Annotated[str, Query()] = "",
    timestamp: Annotated[str, Query()] = "",
    nonce: Annotated[str, Query()] = "",
    echostr: Annotated[str, Query()] = "",
) -> Response:
    """
    Server ownership check: echo echostr when the signature matches.
    """
    ctx = require_account(request, account_id)
    logger.info(f"Challenge for {ctx.app_id}")

    try:
        echoed = MessageFacade(ctx, request.app.state.chain).challenge(signature, timestamp, nonce, echostr)
    except WeixinError as e:
        raise reject(request, account_id, e)

    record_webhook_outcome("challenge_ok")
    log_exchange_data(request=request, account=account_id, result="challenge_ok")
    return Response(content=echoed, media_type="text/plain")


@app.post(
    "/{account_id}",
    response_class=Response,
    responses={
        400: {"model": ErrorResponse, "description": "Ciphertext could not be decrypted"},
        401: {"model": ErrorResponse, "description": "Invalid signature or corrupt message"},
        404: {"model": ErrorResponse, "description": "Unknown account"},
        422: {"model": ErrorResponse, "description": "Unknown message or event type"},
        504: {"model": ErrorResponse, "description": "No reply in time"},
    }
)
async def on_message(
    request: Request,
    account_id: str,
    signature: Annotated[str, Query()] = "",
    timestamp: Annotated[str, Query()] = "",
    nonce: Annotated[str, Query()] = "",
    openid: Annotated[Optional[str], Query()] = None,
    encrypt_type: Annotated[Optional[str], Query()] = None,
    msg_signature: Annotated[Optional[str], Query()] = None,
) -> Response:
    """
    Receive a pushed message or event and answer with the passive reply.

    Query parameters are those appended by the platform; the body is the
    (possibly encrypted) XML payload.
    """
    ctx = require_account(request, account_id)

    raw_body = await request.body()
    logger.debug(f"Request body size: {len(raw_body)} bytes")

    facade = MessageFacade(ctx, request.app.state.chain, reply_timeout=settings.REPLY_TIMEOUT_SECONDS)
    try:
        result = await facade.on_message(
            signature=signature,
            timestamp=timestamp,
            nonce=nonce,
            openid=openid,
            encrypt_type=encrypt_type,
            msg_signature=msg_signature,
            body=raw_body.decode("utf-8", errors="replace"),
        )
    except WeixinError as e:
        raise reject(request, account_id, e)

    msg = result.message
    outcome = {"ack": "acknowledged", "suppress": "suppressed"}.get(result.reply.msg_type, "replied")
    record_webhook_outcome(outcome)
    log_exchange_data(
        request=request,
        account=account_id,
        msg_type=getattr(msg, "event_type", msg.msg_type).value if msg is not None else None,
        msg_id=msg.msg_id if msg is not None else None,
        result=outcome,
    )

    if result.xml is not None:
        return Response(content=result.xml, media_type="text/xml")
    return Response(content=result.text, media_type="text/plain")


# =============================================================================
# Staged Replies Route
# =============================================================================

@app.put(
    "/{account_id}/replies/{msg_id}",
    response_model=StageReplyResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown account"},
    }
)
async def put_staged_reply(
    request: Request,
    account_id: str,
    msg_id: str,
    body: StageReplyRequest,
    db: Session = Depends(get_db)
) -> StageReplyResponse:
    """
    Stage the reply for a message whose handler could not answer in time.

    The platform's redelivery of msg_id is answered with this reply once.
    """
    ctx = require_account(request, account_id)

    replaced = stage_reply(db=db, account_id=ctx.account_id, msg_id=msg_id, reply=body.reply)
    record_webhook_outcome("staged")
    log_exchange_data(request=request, account=account_id, msg_type=body.reply.msg_type, msg_id=msg_id, result="staged")

    return StageReplyResponse(status="staged", replaced=replaced)
