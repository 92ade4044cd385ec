"""
Request signature computation and verification.

The platform signs a request by sorting its inputs, concatenating them and
taking the SHA-1 hex digest. Because of the sort, the order in which the
inputs are passed is irrelevant.
"""

import hmac
import hashlib
import logging

logger = logging.getLogger(__name__)


def digest(content: str) -> str:
    """
    SHA-1 digest of a string.

    Args:
        content: Text to digest (encoded as UTF-8)

    Returns:
        Lowercase hex digest
    """
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


def sign(*parts: str) -> str:
    """
    Compute the signature the platform expects for the given inputs.

    Args:
        parts: token, timestamp, nonce and, for messages, the ciphertext

    Returns:
        Lowercase hex SHA-1 of the sorted, concatenated inputs
    """
    ordered = sorted(part.encode("utf-8") for part in parts)
    return digest(b"".join(ordered).decode("utf-8"))


def check_signature(signature: str, *parts: str) -> bool:
    """
    Verify a platform signature.

    Args:
        signature: Hex signature received with the request
        parts: token, timestamp, nonce and, for messages, the ciphertext

    Returns:
        True if signature is valid (case-insensitive), False otherwise
    """
    if not signature:
        logger.debug("Empty signature")
        return False

    expected_signature = sign(*parts)
    logger.debug(f"Expected signature: {expected_signature[:8]}..., received: {signature[:8]}...")

    # Use constant-time comparison to prevent timing attacks
    is_valid = hmac.compare_digest(
        expected_signature.encode("utf-8"),
        signature.lower().encode("utf-8")
    )
    logger.debug(f"Signature verification: {'valid' if is_valid else 'invalid'}")

    return is_valid
