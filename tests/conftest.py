"""Shared fixtures: mock backend and a processor wired to it."""

import pytest

from predledger.fhe import MockBackend
from predledger.ledger import MarketOperationProcessor


@pytest.fixture
def backend():
    return MockBackend()


@pytest.fixture
def processor(backend):
    return MarketOperationProcessor(backend)


@pytest.fixture
def weather(processor):
    """Market 0: Weather / Sunny, Rainy, Snow."""
    return processor.create_market("creator", "Weather", ["Sunny", "Rainy", "Snow"])
