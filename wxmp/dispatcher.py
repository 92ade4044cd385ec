"""
Routing of parsed messages to application handlers.

Handlers are raced in priority order with zero wait tolerance: each one gets
a single event-loop step to produce its reply. The first handler with a
ready reply wins, so cheap synchronous handlers short-circuit expensive
asynchronous ones deterministically. An optional fallback is the only
handler that is awaited; without one the chain acknowledges.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Sequence, Union

from sqlalchemy.orm import Session

from wxmp.context import AccountContext
from wxmp.messages import RequestMessage
from wxmp.replies import ACKNOWLEDGE, ReplyMessage
from wxmp.storage import take_staged_reply

logger = logging.getLogger(__name__)

HandlerResult = Optional[Union[ReplyMessage, Awaitable[Optional[ReplyMessage]]]]


class MessageHandler:
    """
    Application logic for pushed messages.

    handle_message returns None to decline, a reply when it is ready, or an
    awaitable (coroutine, task, future) of a reply.
    """

    def handle_message(self, ctx: AccountContext, msg: RequestMessage) -> HandlerResult:
        """Subclasses must override this."""
        raise NotImplementedError


class EventDispatcher(MessageHandler):
    """Fire-and-forget handler: dispatches the message and never replies."""

    def handle_message(self, ctx: AccountContext, msg: RequestMessage) -> HandlerResult:
        self.dispatch(ctx, msg)
        return None

    def dispatch(self, ctx: AccountContext, msg: RequestMessage) -> None:
        """Subclasses must override this."""
        raise NotImplementedError


class StagedReplyHandler(MessageHandler):
    """
    Answers with a reply prepared out of band for this message, if any.

    Workers that cannot answer within the platform's budget stage their
    reply; the platform's redelivery of the same message picks it up here.
    """

    def __init__(self, session_factory: Callable[[], Session], ttl_seconds: float):
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds

    def handle_message(self, ctx: AccountContext, msg: RequestMessage) -> HandlerResult:
        if not msg.msg_id:
            return None
        with self.session_factory() as db:
            reply = take_staged_reply(db, ctx.account_id, msg.msg_id, self.ttl_seconds)
        return reply.addressed_to(msg) if reply is not None else None


def _ready(future: asyncio.Future) -> Optional[ReplyMessage]:
    if not future.done() or future.cancelled():
        return None
    if future.exception() is not None:
        logger.error(f"Handler failed: {future.exception()!r}")
        return None
    return future.result()


class HandlerChain(MessageHandler):
    """
    Ordered handlers plus an optional awaited fallback.

    Results still pending when the race is decided keep running in the
    background; their failures are logged when they finish.
    """

    def __init__(self, handlers: Sequence[MessageHandler] = (), fallback: Optional[MessageHandler] = None):
        self.handlers = list(handlers)
        self.fallback = fallback
        self.background: set[asyncio.Future] = set()

    def add(self, handler: MessageHandler) -> None:
        self.handlers.append(handler)

    def _detach(self, future: asyncio.Future) -> None:
        self.background.add(future)
        future.add_done_callback(self._finished)

    def _finished(self, future: asyncio.Future) -> None:
        self.background.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Background handler failed: {future.exception()!r}")

    async def handle_message(self, ctx: AccountContext, msg: RequestMessage) -> ReplyMessage:
        """
        Return the first ready reply, else the fallback's, else ACKNOWLEDGE.

        A handler that raises is logged and skipped.
        """
        for handler in self.handlers:
            try:
                result = handler.handle_message(ctx, msg)
            except Exception as e:
                logger.error(f"Handler failed: {e!r}")
                continue
            if result is None:
                continue
            if isinstance(result, ReplyMessage):
                return result

            future = asyncio.ensure_future(result)
            # one loop step: a handler that completes without suspending is ready
            await asyncio.sleep(0)
            reply = _ready(future)
            if reply is not None:
                return reply
            if not future.done():
                self._detach(future)

        if self.fallback is not None:
            result = self.fallback.handle_message(ctx, msg)
            reply = await result if inspect.isawaitable(result) else result
            if reply is not None:
                return reply

        logger.warning(f"No handler replied to {msg.msg_type.value} message {msg.msg_id} for {ctx.app_id}")
        return ACKNOWLEDGE
