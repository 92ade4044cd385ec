"""
Error types for the message pipeline.

Every local failure of an exchange (bad signature, broken ciphertext,
unparseable payload, slow handler) is raised as one of these so callers
never see raw library exceptions.
"""

from typing import Any, Optional


class WeixinError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class MessageCorrupt(WeixinError):
    """The exchange must be rejected: it cannot be trusted or read."""

    def __init__(self, message: str, code: str = "message_corrupt", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class SignatureMismatch(MessageCorrupt):
    def __init__(self, message: str = "signature mismatch"):
        super().__init__(message, code="signature_mismatch")


class AppIdMismatch(MessageCorrupt):
    def __init__(self, expected: str, actual: str):
        super().__init__(
            f"decrypted message belongs to '{actual}', expected '{expected}'",
            code="app_id_mismatch",
            details={"expected": expected, "actual": actual},
        )


class MalformedMessage(MessageCorrupt):
    def __init__(self, message: str):
        super().__init__(message, code="malformed_message")


class CryptoError(WeixinError):
    def __init__(self, message: str):
        super().__init__("crypto_error", message)


class UnknownMessageType(WeixinError):
    def __init__(self, msg_type: Optional[str]):
        super().__init__("unknown_message_type", f"unknown message type: {msg_type!r}", {"msg_type": msg_type})
        self.msg_type = msg_type


class UnknownEventType(WeixinError):
    def __init__(self, event_type: Optional[str]):
        super().__init__("unknown_event_type", f"unknown event type: {event_type!r}", {"event_type": event_type})
        self.event_type = event_type


class HandlerTimeout(WeixinError):
    def __init__(self, timeout: float, msg_id: Optional[str] = None):
        super().__init__(
            "handler_timeout",
            f"no reply within {timeout}s",
            {"timeout": timeout, "msg_id": msg_id},
        )
