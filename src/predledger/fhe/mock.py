"""Plaintext-simulating backend for tests and demos. Values are held in the clear."""

from __future__ import annotations

from typing import Any

from predledger.fhe.base import CipherType, HomomorphicBackend


class MockBackend(HomomorphicBackend):
    """Credential is the principal's own name; presenting another name fails."""

    name = "mock"

    def __init__(self) -> None:
        super().__init__()
        self._values: dict[str, int] = {}

    def _seal(self, handle: str, type_: CipherType, value: int) -> None:
        self._values[handle] = value

    def _unseal(self, handle: str, type_: CipherType) -> int:
        return self._values[handle]

    def _verify_credential(self, handle: str, principal: str, credential: Any) -> bool:
        return credential == principal
