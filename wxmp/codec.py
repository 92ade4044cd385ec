"""
Symmetric encryption of the message envelope.

Plaintext frame (before padding):

    16 random bytes | 4-byte big-endian xml length | xml | app id

The frame is padded to a multiple of 32 bytes (not the 16-byte AES block)
and encrypted with AES-256-CBC. The IV is the first 16 bytes of the key.
"""

import base64
import binascii
import logging
import secrets
import string
import struct
from typing import NamedTuple, Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from wxmp.errors import CryptoError

logger = logging.getLogger(__name__)

KEY_SIZE = 32
IV_SIZE = 16
RANDOM_SIZE = 16
LENGTH_SIZE = 4
CONTENT_OFFSET = RANDOM_SIZE + LENGTH_SIZE
BLOCK_SIZE = 32

_ALPHANUMERIC = string.ascii_letters + string.digits


class DecryptedMessage(NamedTuple):
    app_id: str
    xml: str


def random_alphanumeric(length: int = RANDOM_SIZE) -> str:
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def decode_key(key: str) -> bytes:
    """
    Decode the account's base64 key.

    The platform hands out 43-character keys without the trailing '='.
    """
    if not key:
        raise CryptoError("missing encryption key")
    try:
        raw = base64.b64decode(key + "=" * (-len(key) % 4), validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"malformed encryption key: {e}") from e
    if len(raw) != KEY_SIZE:
        raise CryptoError(f"encryption key must decode to {KEY_SIZE} bytes, got {len(raw)}")
    return raw


def _cipher(raw_key: bytes) -> Cipher:
    return Cipher(algorithms.AES(raw_key), modes.CBC(raw_key[:IV_SIZE]))


def frame(xml: str, app_id: str, prefix: Optional[bytes] = None) -> bytes:
    """
    Build the plaintext frame for encryption.

    Args:
        xml: Rendered message
        app_id: Application id appended after the message
        prefix: 16 leading bytes; random alphanumerics when omitted

    Returns:
        Unpadded frame bytes
    """
    if prefix is None:
        prefix = random_alphanumeric().encode("ascii")
    if len(prefix) != RANDOM_SIZE:
        raise CryptoError(f"frame prefix must be {RANDOM_SIZE} bytes")
    data = xml.encode("utf-8")
    return prefix + struct.pack(">I", len(data)) + data + app_id.encode("utf-8")


def pad(data: bytes, interleaved: bool = False) -> bytes:
    """
    Pad data up to a multiple of 32 bytes.

    Every padding byte holds the padding length; an aligned input gets a
    whole extra block. With interleaved=True only every other padding byte
    is filled and the others stay zero, which is the byte pattern produced
    by the legacy encoder.
    """
    padding_length = BLOCK_SIZE - (len(data) % BLOCK_SIZE)
    padding = bytearray(padding_length)
    step = 2 if interleaved else 1
    for i in range(0, padding_length, step):
        padding[i] = padding_length
    return data + bytes(padding)


def encrypt(key: str, plaintext: bytes, interleaved: bool = False) -> str:
    """
    Encrypt a frame.

    Args:
        key: Account base64 key
        plaintext: Frame built by frame()
        interleaved: Use the legacy padding byte pattern

    Returns:
        Base64 ciphertext
    """
    encryptor = _cipher(decode_key(key)).encryptor()
    encrypted = encryptor.update(pad(plaintext, interleaved)) + encryptor.finalize()
    return base64.b64encode(encrypted).decode("ascii")


def decrypt(key: str, ciphertext: str) -> DecryptedMessage:
    """
    Decrypt an Encrypt element and split the frame.

    The caller must compare the returned app id with the account's.

    Raises:
        CryptoError: key, ciphertext or frame is malformed
    """
    raw_key = decode_key(key)
    try:
        data = base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise CryptoError(f"malformed ciphertext: {e}") from e
    if not data or len(data) % IV_SIZE:
        raise CryptoError(f"ciphertext length {len(data)} is not a multiple of {IV_SIZE}")

    decryptor = _cipher(raw_key).decryptor()
    try:
        plain = decryptor.update(data) + decryptor.finalize()
    except ValueError as e:
        raise CryptoError(f"decryption failed: {e}") from e

    if len(plain) < CONTENT_OFFSET:
        raise CryptoError("decrypted frame too short")

    (xml_length,) = struct.unpack(">I", plain[RANDOM_SIZE:CONTENT_OFFSET])
    padding_length = plain[-1]
    if padding_length < 1 or padding_length > BLOCK_SIZE:
        logger.warning(f"Unexpected padding length {padding_length}, keeping trailing bytes")
        padding_length = 0

    xml_end = CONTENT_OFFSET + xml_length
    app_id_end = len(plain) - padding_length
    if xml_end > app_id_end:
        raise CryptoError(f"declared message length {xml_length} exceeds frame")

    try:
        xml = plain[CONTENT_OFFSET:xml_end].decode("utf-8")
        app_id = plain[xml_end:app_id_end].decode("utf-8")
    except UnicodeDecodeError as e:
        raise CryptoError(f"decrypted frame is not UTF-8: {e}") from e

    return DecryptedMessage(app_id=app_id, xml=xml)
