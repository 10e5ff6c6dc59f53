"""Homomorphic value capability - opaque Cipher handles and the operations the ledger consumes.

Backends keep an arena keyed by handle: handle -> sealed value, handle -> type,
handle -> grant set. Every operation mints a new handle, and a fresh handle
starts with an empty grant set. Handles made by `encrypt(..., owner=...)` are
input ciphertexts bound to the principal that submitted them; derived handles
have no owner.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from enum import Enum
from threading import Lock
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict

log = structlog.get_logger(__name__)

UINT32_MOD = 2**32


class CipherType(str, Enum):
    BOOL = "ebool"
    UINT32 = "euint32"


class Cipher(BaseModel):
    """Opaque ciphertext handle. Carries no value; only the backend can resolve it."""

    model_config = ConfigDict(frozen=True)

    handle: str
    type: CipherType = CipherType.UINT32


class Denied(Exception):
    """Decrypt attempted by a principal without a grant, or with a bad credential."""

    code = "denied"

    def __init__(self, handle: str, principal: str, reason: str = "not_granted") -> None:
        super().__init__(f"principal {principal!r} may not decrypt {handle} ({reason})")
        self.handle = handle
        self.principal = principal
        self.reason = reason


class UnknownHandle(KeyError):
    """Handle was not minted by this backend."""


class HomomorphicBackend(ABC):
    """Base for backends. Subclasses decide how values are sealed and how credentials are checked."""

    name: str = ""

    def __init__(self) -> None:
        self._types: dict[str, CipherType] = {}
        self._acl: dict[str, set[str]] = {}
        self._owners: dict[str, str] = {}
        self._lock = Lock()

    @abstractmethod
    def _seal(self, handle: str, type_: CipherType, value: int) -> None:
        """Store value under handle."""
        ...

    @abstractmethod
    def _unseal(self, handle: str, type_: CipherType) -> int:
        """Recover the value stored under handle."""
        ...

    @abstractmethod
    def _verify_credential(self, handle: str, principal: str, credential: Any) -> bool:
        """Return True if credential proves the caller is principal."""
        ...

    # --- arena ---

    def _mint(self, type_: CipherType, value: int, owner: str | None = None) -> Cipher:
        handle = uuid.uuid4().hex
        self._seal(handle, type_, value)
        with self._lock:
            self._types[handle] = type_
            self._acl[handle] = set()
            if owner is not None:
                self._owners[handle] = owner
        return Cipher(handle=handle, type=type_)

    def _resolve(self, cipher: Cipher) -> int:
        type_ = self._types.get(cipher.handle)
        if type_ is None:
            raise UnknownHandle(cipher.handle)
        if type_ != cipher.type:
            raise TypeError(f"handle {cipher.handle} is {type_.value}, not {cipher.type.value}")
        return self._unseal(cipher.handle, type_)

    @staticmethod
    def _normalize(value: int | bool, type_: CipherType) -> int:
        if type_ == CipherType.BOOL:
            return 1 if value else 0
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"euint32 plaintext must be int, got {type(value).__name__}")
        if not 0 <= value < UINT32_MOD:
            raise ValueError(f"{value} out of euint32 range")
        return value

    # --- operations ---

    def encrypt(self, value: int | bool, type_: CipherType = CipherType.UINT32, owner: str | None = None) -> Cipher:
        """Encrypt a plaintext. With owner, the handle is an input ciphertext bound to that principal."""
        return self._mint(type_, self._normalize(value, type_), owner)

    def knows(self, cipher: Cipher) -> bool:
        """True if this backend minted the handle with the cipher's type."""
        return self._types.get(cipher.handle) == cipher.type

    def owner_of(self, cipher: Cipher) -> str | None:
        """Principal that submitted this input ciphertext, or None for derived handles."""
        return self._owners.get(cipher.handle)

    def eq(self, a: Cipher, b: Cipher) -> Cipher:
        if a.type != b.type:
            raise TypeError(f"eq over mismatched types {a.type.value} and {b.type.value}")
        return self._mint(CipherType.BOOL, int(self._resolve(a) == self._resolve(b)))

    def select(self, cond: Cipher, if_true: Cipher, if_false: Cipher) -> Cipher:
        if cond.type != CipherType.BOOL:
            raise TypeError("select condition must be ebool")
        if if_true.type != if_false.type:
            raise TypeError("select branches must share a type")
        # Both branches are resolved regardless of the condition.
        t = self._resolve(if_true)
        f = self._resolve(if_false)
        return self._mint(if_true.type, t if self._resolve(cond) else f)

    def add(self, a: Cipher, b: Cipher) -> Cipher:
        if a.type != CipherType.UINT32 or b.type != CipherType.UINT32:
            raise TypeError("add is defined on euint32 only")
        return self._mint(CipherType.UINT32, (self._resolve(a) + self._resolve(b)) % UINT32_MOD)

    def allow(self, cipher: Cipher, principal: str) -> None:
        """Mark principal as an authorized decryptor of this handle. Idempotent."""
        with self._lock:
            grants = self._acl.get(cipher.handle)
            if grants is None:
                raise UnknownHandle(cipher.handle)
            grants.add(principal)

    def is_allowed(self, cipher: Cipher, principal: str) -> bool:
        return principal in self._acl.get(cipher.handle, ())

    def allowed(self, cipher: Cipher) -> frozenset[str]:
        with self._lock:
            return frozenset(self._acl.get(cipher.handle, ()))

    def decrypt(self, cipher: Cipher, principal: str, credential: Any) -> int | bool:
        if not self.is_allowed(cipher, principal):
            log.info("decrypt_denied", handle=cipher.handle, principal=principal, reason="not_granted")
            raise Denied(cipher.handle, principal)
        if not self._verify_credential(cipher.handle, principal, credential):
            log.info("decrypt_denied", handle=cipher.handle, principal=principal, reason="bad_credential")
            raise Denied(cipher.handle, principal, reason="bad_credential")
        value = self._resolve(cipher)
        return bool(value) if cipher.type == CipherType.BOOL else value
