"""
Outbound response assembly.

Strict accounts receive replies encrypted and signed inside the
Encrypt/MsgSignature/TimeStamp/Nonce envelope; everything else goes out as
rendered.
"""

import logging
from typing import Optional

from wxmp import codec
from wxmp.context import AccountContext
from wxmp.replies import ReplyMessage, cdata, now_millis
from wxmp.signature import sign

logger = logging.getLogger(__name__)


def encrypted_envelope(ciphertext: str, signature: str, timestamp: str, nonce: str) -> str:
    return "\n".join([
        "<xml>",
        f"<Encrypt>{cdata(ciphertext)}</Encrypt>",
        f"<MsgSignature>{cdata(signature)}</MsgSignature>",
        f"<TimeStamp>{timestamp}</TimeStamp>",
        f"<Nonce>{cdata(nonce)}</Nonce>",
        "</xml>",
    ])


class ResponseBuilder:
    """Renders a reply for one account according to its trust mode."""

    def __init__(self, ctx: AccountContext, interleaved_padding: bool = False):
        self.ctx = ctx
        self.interleaved_padding = interleaved_padding

    def build(self, reply: ReplyMessage, nonce: str, create_time: Optional[int] = None) -> str:
        """
        Render, and for strict accounts encrypt and sign, a reply.

        Args:
            reply: Reply returned by the handlers
            nonce: Nonce of the inbound request, echoed in the envelope
            create_time: Envelope time in milliseconds (defaults to now)

        Returns:
            Response body
        """
        # Protocol acknowledgements are never encrypted
        if reply.is_sentinel:
            return reply.to_xml()

        if not self.ctx.strict:
            return reply.to_xml()

        timestamp = str((now_millis() if create_time is None else create_time) // 1000)
        plaintext = codec.frame(reply.to_xml(), self.ctx.app_id)
        ciphertext = codec.encrypt(self.ctx.key, plaintext, interleaved=self.interleaved_padding)
        signature = sign(self.ctx.token, timestamp, nonce, ciphertext)
        logger.debug(f"Encrypted {reply.msg_type} reply for {self.ctx.app_id}")
        return encrypted_envelope(ciphertext, signature, timestamp, nonce)
