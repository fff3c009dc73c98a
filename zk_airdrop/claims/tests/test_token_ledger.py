"""Tests for the in-memory token ledger."""

from __future__ import annotations

import pytest

from zk_airdrop.claims.exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    TransferError,
)
from zk_airdrop.claims.tokens import InMemoryTokenLedger


@pytest.fixture
def ledger() -> InMemoryTokenLedger:
    ledger = InMemoryTokenLedger()
    ledger.mint("TKN", "owner", 10)
    ledger.approve("TKN", "owner", "engine", 4)
    return ledger


def test_transfer_moves_funds_and_spends_allowance(ledger):
    ledger.transfer_from("TKN", "engine", "owner", "bob", 3)

    assert ledger.balance_of("TKN", "owner") == 7
    assert ledger.balance_of("TKN", "bob") == 3
    assert ledger.allowance("TKN", "owner", "engine") == 1


def test_insufficient_allowance_changes_nothing(ledger):
    with pytest.raises(InsufficientAllowanceError):
        ledger.transfer_from("TKN", "engine", "owner", "bob", 5)
    assert ledger.balance_of("TKN", "owner") == 10
    assert ledger.allowance("TKN", "owner", "engine") == 4


def test_insufficient_balance_changes_nothing(ledger):
    ledger.approve("TKN", "owner", "engine", 50)
    with pytest.raises(InsufficientBalanceError):
        ledger.transfer_from("TKN", "engine", "owner", "bob", 11)
    assert ledger.balance_of("TKN", "bob") == 0
    assert ledger.allowance("TKN", "owner", "engine") == 50


def test_allowance_is_per_spender_and_token(ledger):
    with pytest.raises(InsufficientAllowanceError):
        ledger.transfer_from("TKN", "someone", "owner", "bob", 1)
    with pytest.raises(InsufficientAllowanceError):
        ledger.transfer_from("OTHER", "engine", "owner", "bob", 1)


def test_approve_replaces_allowance(ledger):
    ledger.approve("TKN", "owner", "engine", 1)
    assert ledger.allowance("TKN", "owner", "engine") == 1


@pytest.mark.parametrize("amount", [-1, 1.0, True])
def test_amounts_must_be_non_negative_ints(ledger, amount):
    with pytest.raises(TransferError):
        ledger.transfer_from("TKN", "engine", "owner", "bob", amount)
    with pytest.raises(TransferError):
        ledger.mint("TKN", "owner", amount)


def test_reload_restores_balances(ledger):
    restored = InMemoryTokenLedger()
    restored.load_dict(ledger.to_dict())
    assert restored.balance_of("TKN", "owner") == 10
    assert restored.allowance("TKN", "owner", "engine") == 4
