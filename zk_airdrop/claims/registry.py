"""Airdrop records: creation and lookup."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from .events import AirdropCreated, EventBus
from .exceptions import InvalidAmountError, NotFoundError
from .types import Airdrop

logger = logging.getLogger(__name__)


class AirdropRegistry:
    """
    Owns airdrop records. Identifiers start at 1 and increase by one per
    creation; records are never updated or deleted.
    """

    def __init__(self, events: Optional[EventBus] = None) -> None:
        self._lock = threading.Lock()
        self._records: Dict[int, Airdrop] = {}
        self._next_id = 1
        self._events = events

    def create(
        self,
        group_id: int,
        token: str,
        holder: str,
        amount: int,
        *,
        manager: str,
    ) -> int:
        """
        Register a new airdrop.

        The holder's allowance is not checked here; a claim fails with a
        transfer error if it is insufficient at claim time.

        Returns:
            The new airdrop id.

        Raises:
            InvalidAmountError: If ``amount`` is not a positive int.
            ValueError: If another field is malformed.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(f"amount must be a positive int, got {amount!r}")
        if isinstance(group_id, bool) or not isinstance(group_id, int) or group_id < 0:
            raise ValueError("group_id must be a non-negative int")
        for label, value in (("token", token), ("holder", holder), ("manager", manager)):
            if not isinstance(value, str) or not value:
                raise ValueError(f"{label} must be a non-empty string")

        with self._lock:
            airdrop = Airdrop(
                airdrop_id=self._next_id,
                group_id=group_id,
                token=token,
                manager=manager,
                holder=holder,
                amount=amount,
            )
            self._records[airdrop.airdrop_id] = airdrop
            self._next_id += 1

        logger.info(
            "Created airdrop %d: group=%d token=%s holder=%s amount=%d",
            airdrop.airdrop_id,
            group_id,
            token,
            holder,
            amount,
        )
        if self._events is not None:
            self._events.publish(AirdropCreated(airdrop=airdrop))
        return airdrop.airdrop_id

    def get(self, airdrop_id: int) -> Airdrop:
        with self._lock:
            airdrop = self._records.get(airdrop_id)
        if airdrop is None:
            raise NotFoundError(f"Airdrop {airdrop_id} not found")
        return airdrop

    def list_airdrops(self) -> List[Airdrop]:
        with self._lock:
            return [self._records[k] for k in sorted(self._records)]

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "next_id": self._next_id,
                "airdrops": [a.to_dict() for a in self._records.values()],
            }

    def load_dict(self, data: Dict[str, Any]) -> None:
        with self._lock:
            self._records = {
                int(a["airdrop_id"]): Airdrop.from_dict(a) for a in data.get("airdrops", [])
            }
            floor = max(self._records, default=0) + 1
            self._next_id = max(int(data.get("next_id", 1)), floor)
