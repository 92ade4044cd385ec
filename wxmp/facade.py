"""
Entry point for one inbound exchange.

challenge() answers the platform's server-ownership check. on_message()
runs verifier -> codec -> parser -> handlers -> builder for a push.
Repeated pushes of the same message are not filtered here; handlers must
be idempotent or deduplicate on msg_id.
"""

import asyncio
import logging
import time
from typing import NamedTuple, Optional

from wxmp import codec
from wxmp.builder import ResponseBuilder
from wxmp.context import AccountContext
from wxmp.dispatcher import HandlerChain
from wxmp.errors import AppIdMismatch, HandlerTimeout, MessageCorrupt, SignatureMismatch
from wxmp.messages import RequestMessage
from wxmp.metrics import observe_handler_latency
from wxmp.parser import ENCRYPT_TAG, MSG_TYPE_TAG, flatten, parse, parse_fields, top_level
from wxmp.replies import SUPPRESS, ReplyMessage
from wxmp.signature import check_signature

logger = logging.getLogger(__name__)

DEFAULT_REPLY_TIMEOUT = 4.5


class FacadeResponse(NamedTuple):
    """Sentinel replies travel as text, content replies as xml."""
    text: Optional[str] = None
    xml: Optional[str] = None
    reply: Optional[ReplyMessage] = None
    message: Optional[RequestMessage] = None


class MessageFacade:
    def __init__(
        self,
        ctx: AccountContext,
        handler: HandlerChain,
        reply_timeout: float = DEFAULT_REPLY_TIMEOUT,
        builder: Optional[ResponseBuilder] = None,
    ):
        self.ctx = ctx
        self.handler = handler
        self.reply_timeout = reply_timeout
        self.builder = builder or ResponseBuilder(ctx)

    def _trust(self, trusted: bool, what: str) -> None:
        if trusted:
            return
        if self.ctx.strict:
            logger.info(f"'{self.ctx.app_id}' {what} check failed")
            raise SignatureMismatch(f"{what} to {self.ctx.app_id} corrupt")
        logger.warning(f"'{self.ctx.app_id}' {what} check failed, continuing in {self.ctx.mode.value} mode")

    def challenge(self, signature: str, timestamp: str, nonce: str, echostr: str) -> str:
        """
        Prove server ownership by echoing echostr.

        Raises:
            SignatureMismatch: signature is wrong and the account is strict
        """
        self._trust(check_signature(signature, self.ctx.token, timestamp, nonce), "challenge")
        return echostr

    def retrieve(self, body: str, timestamp: str, nonce: str, msg_signature: Optional[str]) -> RequestMessage:
        """
        Verify and, where needed, decrypt the pushed body into a message.

        Plain accounts read the body as is. Permissive accounts read the
        plaintext tags when present (mixed mode) and decrypt otherwise.
        Strict accounts always decrypt the Encrypt element.
        """
        fields = flatten(body)
        if self.ctx.plain:
            logger.debug(f"'{self.ctx.app_id}' not in encrypt mode")
            return parse_fields(fields)

        header = top_level(fields)
        ciphertext = header.get(ENCRYPT_TAG)
        if ciphertext is None:
            if self.ctx.strict:
                raise MessageCorrupt(f"message to {self.ctx.app_id} has no {ENCRYPT_TAG} element")
            return parse_fields(fields)

        self._trust(check_signature(msg_signature or "", self.ctx.token, timestamp, nonce, ciphertext), "message")

        if not self.ctx.strict and MSG_TYPE_TAG in header:
            return parse_fields(fields)

        decrypted = codec.decrypt(self.ctx.key, ciphertext)
        if decrypted.app_id != self.ctx.app_id:
            raise AppIdMismatch(self.ctx.app_id, decrypted.app_id)
        logger.debug(f"Decrypted message for '{self.ctx.app_id}'")
        return parse(decrypted.xml)

    async def on_message(
        self,
        signature: str,
        timestamp: str,
        nonce: str,
        openid: Optional[str],
        encrypt_type: Optional[str],
        msg_signature: Optional[str],
        body: str,
    ) -> FacadeResponse:
        """
        Handle one pushed message or event.

        Raises:
            MessageCorrupt: trust check failed (strict), app id mismatch, bad XML
            CryptoError: ciphertext could not be decrypted
            UnknownMessageType, UnknownEventType: payload cannot be classified
            HandlerTimeout: no reply within the reply timeout
        """
        self._trust(check_signature(signature, self.ctx.token, timestamp, nonce), "request")

        if not self.ctx.plain and (not encrypt_type or not msg_signature):
            logger.error(f"Message missing encryption parameters, check encrypt mode for appId={self.ctx.app_id}")
            return FacadeResponse(text=SUPPRESS.to_xml(), reply=SUPPRESS)

        msg = self.retrieve(body, timestamp, nonce, msg_signature)
        logger.info(f"'{self.ctx.app_id}' received {msg.msg_type.value} message {msg.msg_id} from {openid or msg.from_open_id}")

        started = time.perf_counter()
        try:
            reply = await asyncio.wait_for(self.handler.handle_message(self.ctx, msg), timeout=self.reply_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Handlers for '{self.ctx.app_id}' message {msg.msg_id} exceeded {self.reply_timeout}s")
            raise HandlerTimeout(self.reply_timeout, msg.msg_id) from e
        finally:
            observe_handler_latency(time.perf_counter() - started)

        logger.debug(f"Handling '{self.ctx.app_id}' message returned {reply.msg_type}")
        if not reply.is_sentinel and not reply.to_open_id:
            reply = reply.addressed_to(msg)
        rendered = self.builder.build(reply, nonce)
        if reply.is_sentinel:
            return FacadeResponse(text=rendered, reply=reply, message=msg)
        return FacadeResponse(xml=rendered, reply=reply, message=msg)
