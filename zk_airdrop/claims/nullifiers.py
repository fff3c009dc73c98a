"""
Consumed-nullifier registry.

A nullifier hash is scoped to one airdrop. Each (scope, nullifier_hash) pair
moves from unconsumed to consumed exactly once and never back.

``reserve`` is the transactional form used by the claim engine: the pair is
marked pending atomically, the caller performs the transfer inside the
``with`` block, and the reservation is committed on normal exit or discarded
if the block raises. A pending pair is rejected like a consumed one, so two
concurrent claimants can never both pass the replay guard.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Set, Tuple

from .exceptions import InvalidNullifierError

logger = logging.getLogger(__name__)

NullifierKey = Tuple[int, int]


class NullifierRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._consumed: Set[NullifierKey] = set()
        self._pending: Set[NullifierKey] = set()

    def try_consume(self, scope: int, nullifier_hash: int) -> None:
        """
        Consume the pair in a single check-and-set.

        Raises:
            InvalidNullifierError: If the pair is consumed or reserved.
        """
        key = (scope, nullifier_hash)
        with self._lock:
            self._reject_if_used(key)
            self._consumed.add(key)

    @contextmanager
    def reserve(self, scope: int, nullifier_hash: int) -> Iterator[NullifierKey]:
        """
        Reserve the pair for the duration of the block.

        Raises:
            InvalidNullifierError: If the pair is consumed or reserved.
        """
        key = (scope, nullifier_hash)
        with self._lock:
            self._reject_if_used(key)
            self._pending.add(key)
        try:
            yield key
        except BaseException:
            with self._lock:
                self._pending.discard(key)
            logger.debug("Reservation for airdrop %s discarded", scope)
            raise
        with self._lock:
            self._pending.discard(key)
            self._consumed.add(key)

    def is_consumed(self, scope: int, nullifier_hash: int) -> bool:
        with self._lock:
            return (scope, nullifier_hash) in self._consumed

    def consumed_count(self, scope: int | None = None) -> int:
        with self._lock:
            if scope is None:
                return len(self._consumed)
            return sum(1 for s, _ in self._consumed if s == scope)

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "consumed": [
                    {"scope": s, "nullifier_hash": n} for s, n in sorted(self._consumed)
                ]
            }

    def load_dict(self, data: Dict[str, Any]) -> None:
        with self._lock:
            self._pending.clear()
            self._consumed = {
                (int(e["scope"]), int(e["nullifier_hash"]))
                for e in data.get("consumed", [])
            }

    def _reject_if_used(self, key: NullifierKey) -> None:
        if key in self._consumed:
            raise InvalidNullifierError(
                "Nullifier already used for this airdrop", airdrop_id=key[0]
            )
        if key in self._pending:
            raise InvalidNullifierError(
                "Nullifier claim already in progress for this airdrop",
                airdrop_id=key[0],
            )
