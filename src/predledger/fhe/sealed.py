"""Sealed-value backend: AES-GCM at rest, Ed25519 decrypt credentials.

Models a coprocessor that holds the service key. The ledger only ever sees
handles; the coprocessor unseals internally to evaluate eq/select/add and to
answer authorized decrypt requests. Principals are hex-encoded raw Ed25519
public keys; a credential is the principal's signature over the decrypt
request for one handle.
"""

from __future__ import annotations

import os
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from predledger.fhe.base import Cipher, CipherType, HomomorphicBackend

DECRYPT_DOMAIN = b"predledger-decrypt:"
_NONCE_LEN = 12


def decrypt_request(handle: str) -> bytes:
    """Message a principal signs to ask for one handle's plaintext."""
    return DECRYPT_DOMAIN + handle.encode()


def principal_for(private_key: Ed25519PrivateKey) -> str:
    """Principal id (hex raw public key) for a signing key."""
    raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return raw.hex()


def sign_decrypt_request(private_key: Ed25519PrivateKey, cipher: Cipher) -> bytes:
    return private_key.sign(decrypt_request(cipher.handle))


class SealedBackend(HomomorphicBackend):
    name = "sealed"

    def __init__(self, key: bytes | None = None) -> None:
        super().__init__()
        if key is None:
            key = AESGCM.generate_key(bit_length=256)
        if len(key) != 32:
            raise ValueError("sealed backend key must be 32 bytes")
        self._aead = AESGCM(key)
        self._blobs: dict[str, bytes] = {}

    @staticmethod
    def _aad(handle: str, type_: CipherType) -> bytes:
        return f"{handle}:{type_.value}".encode()

    def _seal(self, handle: str, type_: CipherType, value: int) -> None:
        nonce = os.urandom(_NONCE_LEN)
        sealed = self._aead.encrypt(nonce, value.to_bytes(4, "big"), self._aad(handle, type_))
        self._blobs[handle] = nonce + sealed

    def _unseal(self, handle: str, type_: CipherType) -> int:
        blob = self._blobs[handle]
        plain = self._aead.decrypt(blob[:_NONCE_LEN], blob[_NONCE_LEN:], self._aad(handle, type_))
        return int.from_bytes(plain, "big")

    def _verify_credential(self, handle: str, principal: str, credential: Any) -> bool:
        if not isinstance(credential, (bytes, bytearray)):
            return False
        try:
            public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(principal))
            public_key.verify(bytes(credential), decrypt_request(handle))
        except (ValueError, InvalidSignature):
            return False
        return True
