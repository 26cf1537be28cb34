"""AES-256-GCM sealing of webhook URLs at rest.

Sealed blobs are ``base64(nonce || tag || ciphertext)`` with a 12 byte nonce
and a 16 byte tag. Nonces come from ``os.urandom`` on every call; there is no
counter, so uniqueness rests on the randomness source.
"""
import os
import base64
import binascii
import hashlib

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import FALLBACK_SECRET
from .errors import DecryptionError

NONCE_SIZE = 12
TAG_SIZE = 16


def derive_key(secret: str) -> bytes:
    """32 byte key from the configured secret."""
    base = secret or FALLBACK_SECRET
    return hashlib.sha256(str(base).encode("utf-8")).digest()


class SymmetricCodec:
    def __init__(self, secret: str):
        self._aead = AESGCM(derive_key(secret))

    def seal(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        # cryptography appends the tag, stored layout puts it first
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        body, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return base64.b64encode(nonce + tag + body).decode("ascii")

    def open(self, blob: str) -> str:
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise DecryptionError("malformed sealed blob") from e

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("sealed blob too short")

        nonce = raw[:NONCE_SIZE]
        tag = raw[NONCE_SIZE:NONCE_SIZE + TAG_SIZE]
        body = raw[NONCE_SIZE + TAG_SIZE:]
        try:
            plain = self._aead.decrypt(nonce, body + tag, None)
        except InvalidTag as e:
            raise DecryptionError("authentication failed") from e
        return plain.decode("utf-8")
