"""
Client-side password wrapping using ephemeral AES-GCM keys.

Each unlock request gets a fresh 256-bit key and 96-bit IV. The key travels
in the same request as the ciphertext because there is no pre-shared
secret, so this only keeps the password out of request-body logging. It is
NOT confidentiality against an active interceptor on the channel; transport
security still has to come from TLS.
"""

import base64
import os
import random
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import CryptoUnavailable

ALGORITHM = 'AES-GCM'
KEY_LENGTH_BITS = 256
IV_LENGTH_BYTES = 12  # 96 bits, recommended for AES-GCM
SESSION_ID_BYTES = 16


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode('ascii')


def generate_session_id() -> str:
    """
    Generate an opaque session identifier.

    16 random bytes hex-encoded, or a timestamp + pseudo-random fallback
    when the OS has no strong randomness source.
    """
    try:
        return secrets.token_hex(SESSION_ID_BYTES)
    except NotImplementedError:
        millis = int(time.time() * 1000)
        return f"{millis:x}{random.getrandbits(64):016x}"


def is_crypto_available() -> bool:
    """Check that a strong random source and AES-GCM are usable."""
    try:
        os.urandom(1)
        AESGCM(bytes(KEY_LENGTH_BITS // 8))
    except (NotImplementedError, UnsupportedAlgorithm):
        return False
    return True


@dataclass(frozen=True)
class EncryptedPassword:
    """A password wrapped for one unlock request."""
    encrypted: str
    key: str
    iv: str
    session_id: str
    timestamp: int

    def metadata(self) -> dict:
        """The ``encryptionMetadata`` object of the secure-unlock body."""
        return {
            'algorithm': ALGORITHM,
            'keyLength': KEY_LENGTH_BITS,
            'key': self.key,
            'iv': self.iv,
            'sessionId': self.session_id,
            'timestamp': self.timestamp,
        }


def encrypt_for_transmission(
    password: str,
    session_id: str,
    clock: Optional[Callable[[], float]] = None,
) -> EncryptedPassword:
    """
    Encrypt a password under a fresh key scoped to a single request.

    Args:
        password: The vault password
        session_id: Session identifier, echoed in the metadata
        clock: Seconds-since-epoch source for the timestamp

    Returns:
        EncryptedPassword with base64 ciphertext, key and IV

    Raises:
        CryptoUnavailable: no strong randomness or AES-GCM support
    """
    clock = clock or time.time
    try:
        key = AESGCM.generate_key(bit_length=KEY_LENGTH_BITS)
        iv = os.urandom(IV_LENGTH_BYTES)
        ciphertext = AESGCM(key).encrypt(iv, password.encode('utf-8'), None)
    except (NotImplementedError, UnsupportedAlgorithm) as e:
        raise CryptoUnavailable(f"AES-GCM unavailable: {e}") from e

    return EncryptedPassword(
        encrypted=_b64(ciphertext),
        key=_b64(key),
        iv=_b64(iv),
        session_id=session_id,
        timestamp=int(clock() * 1000),
    )


def generate_session_token(session_id: str, clock: Optional[Callable[[], float]] = None) -> str:
    """Synthesize a local bookkeeping token: base64("<ms>:<random>:<session id>")."""
    clock = clock or time.time
    millis = int(clock() * 1000)
    raw = f"{millis}:{generate_session_id()}:{session_id}"
    return _b64(raw.encode('utf-8'))
