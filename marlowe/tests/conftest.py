"""
Shared fixtures for the Marlowe engine tests.
"""

from typing import Dict

import pytest

from marlowe.actions import ActiveContract, ClosedContract, ContractSources
from marlowe.core.state import State, make_environment
from marlowe.core.types import LOVELACE, Address, Role, Token


class InMemorySources(ContractSources):
    """Contract sources backed by dictionaries, counting continuation lookups."""

    def __init__(self, details: Dict[str, object] = None,
                 continuations: Dict[str, object] = None, tip: int = 0):
        self.details = details or {}
        self.continuations = continuations or {}
        self.tip = tip
        self.lookups = []

    async def get_contract_continuation(self, label):
        self.lookups.append(label)
        if label not in self.continuations:
            raise KeyError(label)
        return self.continuations[label]

    async def get_contract_details(self, contract_id):
        return self.details.get(contract_id, ClosedContract())

    async def get_runtime_tip(self):
        return self.tip


@pytest.fixture
def alice():
    return Role("alice")


@pytest.fixture
def bob():
    return Role("bob")


@pytest.fixture
def carol():
    return Address("addr_test1qz0carol")


@pytest.fixture
def dollar():
    return Token("85bb65", "dollar")


@pytest.fixture
def ada():
    return LOVELACE


@pytest.fixture
def env():
    """Window well before any timeout used in the tests."""
    return make_environment(1_000, 2_000)


@pytest.fixture
def empty():
    return State()


@pytest.fixture
def funded(alice, bob, ada, dollar):
    """Alice holds 100 ada and bob 20 dollars."""
    return State(accounts={(alice, ada): 100, (bob, dollar): 20})


@pytest.fixture
def make_sources():
    def _make(contract=None, state=None, continuations=None, tip=0):
        details = {}
        if contract is not None:
            details["contract-1"] = ActiveContract(state or State(), contract)
        return InMemorySources(details, continuations, tip)
    return _make
