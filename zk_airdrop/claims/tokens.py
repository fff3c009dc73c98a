"""
Token ledger capability.

The engine only needs ``transfer_from``; ``InMemoryTokenLedger`` is the
reference implementation used by tests, the CLI and the claim server.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Protocol, Tuple

from .exceptions import InsufficientAllowanceError, InsufficientBalanceError, TransferError

logger = logging.getLogger(__name__)


class TokenLedger(Protocol):
    def balance_of(self, token: str, account: str) -> int:
        ...

    def allowance(self, token: str, owner: str, spender: str) -> int:
        ...

    def transfer_from(
        self, token: str, spender: str, owner: str, receiver: str, amount: int
    ) -> None:
        ...


def _require_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TransferError("amount must be int")
    if amount < 0:
        raise TransferError("amount must be non-negative")
    return amount


class InMemoryTokenLedger:
    """
    Balances and allowances keyed by token identifier.

    ``transfer_from`` validates allowance and balance before touching either,
    so a failed transfer leaves no partial effect.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._balances: Dict[Tuple[str, str], int] = {}
        self._allowances: Dict[Tuple[str, str, str], int] = {}

    def mint(self, token: str, account: str, amount: int) -> int:
        _require_amount(amount)
        with self._lock:
            key = (token, account)
            self._balances[key] = self._balances.get(key, 0) + amount
            return self._balances[key]

    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        _require_amount(amount)
        with self._lock:
            self._allowances[(token, owner, spender)] = amount

    def balance_of(self, token: str, account: str) -> int:
        with self._lock:
            return self._balances.get((token, account), 0)

    def allowance(self, token: str, owner: str, spender: str) -> int:
        with self._lock:
            return self._allowances.get((token, owner, spender), 0)

    def transfer_from(
        self, token: str, spender: str, owner: str, receiver: str, amount: int
    ) -> None:
        _require_amount(amount)
        with self._lock:
            allowance_key = (token, owner, spender)
            allowed = self._allowances.get(allowance_key, 0)
            if allowed < amount:
                raise InsufficientAllowanceError(
                    f"{owner} approved {allowed} {token} for {spender}, need {amount}"
                )
            balance = self._balances.get((token, owner), 0)
            if balance < amount:
                raise InsufficientBalanceError(
                    f"{owner} holds {balance} {token}, need {amount}"
                )
            self._allowances[allowance_key] = allowed - amount
            self._balances[(token, owner)] = balance - amount
            receiver_key = (token, receiver)
            self._balances[receiver_key] = self._balances.get(receiver_key, 0) + amount
        logger.debug("Transferred %d %s from %s to %s", amount, token, owner, receiver)

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "balances": [
                    {"token": t, "account": a, "amount": v}
                    for (t, a), v in sorted(self._balances.items())
                ],
                "allowances": [
                    {"token": t, "owner": o, "spender": s, "amount": v}
                    for (t, o, s), v in sorted(self._allowances.items())
                ],
            }

    def load_dict(self, data: Dict[str, Any]) -> None:
        with self._lock:
            self._balances = {
                (str(e["token"]), str(e["account"])): int(e["amount"])
                for e in data.get("balances", [])
            }
            self._allowances = {
                (str(e["token"]), str(e["owner"]), str(e["spender"])): int(e["amount"])
                for e in data.get("allowances", [])
            }
