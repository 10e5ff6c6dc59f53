"""Homomorphic value capability consumed by the ledger."""

from __future__ import annotations

from typing import Any

from predledger.fhe.base import Cipher, CipherType, Denied, HomomorphicBackend, UnknownHandle
from predledger.fhe.mock import MockBackend
from predledger.fhe.sealed import SealedBackend

__all__ = [
    "Cipher",
    "CipherType",
    "Denied",
    "HomomorphicBackend",
    "MockBackend",
    "SealedBackend",
    "UnknownHandle",
    "create_backend",
]

BACKENDS: dict[str, type[HomomorphicBackend]] = {"mock": MockBackend, "sealed": SealedBackend}


def create_backend(name: str = "mock", **kwargs: Any) -> HomomorphicBackend:
    """Create a backend by name. kwargs go to the backend constructor."""
    try:
        backend_cls = BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unknown backend: {name}. Choose from: {list(BACKENDS)}") from None
    return backend_cls(**kwargs)
