"""
conftest.py - Shared pytest fixtures for lot ledger tests

Provides common fixtures used across unit, functional and conformance tests:
- Empty ledgers
- A fully staffed chain (one approved participant per role)
- A chain with a producer lot already created
"""

import pytest
from datetime import datetime

from lotledger import SupplyChainLedger

from tests.chain_helpers import ADMIN, PRODUCER, CHAIN, approve


@pytest.fixture
def empty_ledger():
    """Fresh ledger with no participants."""
    return SupplyChainLedger("test", ADMIN, datetime(2025, 1, 1), verbose=False)


@pytest.fixture
def chain_ledger(empty_ledger):
    """Ledger with one approved participant per role."""
    for identity, role in CHAIN.items():
        approve(empty_ledger, identity, role)
    return empty_ledger


@pytest.fixture
def lot_ledger(chain_ledger):
    """Chain ledger where the producer created lot 1 with a supply of 100."""
    lot_id = chain_ledger.create_lot(PRODUCER, "Wheat", 100, features="organic")
    assert lot_id == 1
    return chain_ledger
