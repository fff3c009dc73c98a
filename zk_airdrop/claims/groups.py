"""
In-process membership groups.

Each group is an ordered list of identity commitments summarized by a Merkle
root. Every change of composition produces a new root and is announced to
subscribed listeners (typically a ``MembershipRootLedger``). Listeners run
while the group lock is held so they observe roots in the order they were
produced; share one re-entrant lock between the groups and the root ledger to
serialize admissions with claims.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from .clock import Clock, WallClock
from .exceptions import GroupError
from .hashing import require_field_element, short_hex
from .merkle import compute_root

logger = logging.getLogger(__name__)

RootListener = Callable[[int, int, float], None]


@dataclass
class MembershipGroup:
    group_id: int
    admin: str
    members: List[int] = field(default_factory=list)
    root: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id": self.group_id,
            "admin": self.admin,
            "members": list(self.members),
        }


class MembershipGroups:
    """
    Group registry and root-history event source.

    Example:
        groups = MembershipGroups()
        groups.subscribe(ledger.on_membership_change)
        groups.create_group(1, admin="0xadmin")
        groups.add_member(1, identity.commitment, admin="0xadmin")
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self._clock = clock or WallClock()
        self._lock = lock or threading.RLock()
        self._groups: Dict[int, MembershipGroup] = {}
        self._members_by_root: Dict[int, FrozenSet[int]] = {}
        self._listeners: List[RootListener] = []

    def subscribe(self, listener: RootListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def create_group(
        self, group_id: int, admin: str, at_time: Optional[float] = None
    ) -> int:
        """
        Create an empty group and announce its initial root.

        Returns:
            The initial root.

        Raises:
            GroupError: If the group already exists or arguments are invalid.
        """
        if isinstance(group_id, bool) or not isinstance(group_id, int) or group_id < 0:
            raise GroupError("group_id must be a non-negative int")
        if not isinstance(admin, str) or not admin:
            raise GroupError("admin must be a non-empty string")

        with self._lock:
            if group_id in self._groups:
                raise GroupError(f"Group {group_id} already exists")
            group = MembershipGroup(group_id=group_id, admin=admin)
            group.root = compute_root(group.members)
            self._groups[group_id] = group
            self._members_by_root[group.root] = frozenset()
            logger.info("Created group %s (admin=%s)", group_id, admin)
            self._notify(group_id, group.root, at_time)
            return group.root

    def add_member(
        self,
        group_id: int,
        commitment: int,
        admin: str,
        at_time: Optional[float] = None,
    ) -> int:
        """
        Admit an identity commitment and announce the new root.

        Returns:
            The new root.

        Raises:
            GroupError: If the group is unknown, the caller is not the admin or
                the commitment is already a member.
        """
        try:
            require_field_element(commitment, "commitment")
        except (TypeError, ValueError) as exc:
            raise GroupError(str(exc)) from exc

        with self._lock:
            group = self._require_group(group_id)
            if group.admin != admin:
                raise GroupError("Only the group admin can add members")
            if commitment in group.members:
                raise GroupError("Identity already in group")

            group.members.append(commitment)
            group.root = compute_root(group.members)
            self._members_by_root[group.root] = frozenset(group.members)
            logger.info(
                "Group %s admitted member #%d, root=%s",
                group_id,
                len(group.members),
                short_hex(group.root),
            )
            self._notify(group_id, group.root, at_time)
            return group.root

    def get_root(self, group_id: int) -> int:
        with self._lock:
            return self._require_group(group_id).root

    def members(self, group_id: int) -> List[int]:
        with self._lock:
            return list(self._require_group(group_id).members)

    def has_group(self, group_id: int) -> bool:
        with self._lock:
            return group_id in self._groups

    def members_at_root(self, root: int) -> FrozenSet[int]:
        """Commitments summarized by ``root``; empty if the root is unknown."""
        with self._lock:
            return self._members_by_root.get(root, frozenset())

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "groups": [g.to_dict() for g in self._groups.values()],
                "roots": [
                    {"root": root, "members": sorted(members)}
                    for root, members in self._members_by_root.items()
                ],
            }

    def load_dict(self, data: Dict[str, Any]) -> None:
        """Replace state from ``to_dict`` output without notifying listeners."""
        with self._lock:
            self._groups.clear()
            self._members_by_root.clear()
            for entry in data.get("groups", []):
                group = MembershipGroup(
                    group_id=int(entry["group_id"]),
                    admin=str(entry["admin"]),
                    members=[int(m) for m in entry.get("members", [])],
                )
                group.root = compute_root(group.members)
                self._groups[group.group_id] = group
            for entry in data.get("roots", []):
                self._members_by_root[int(entry["root"])] = frozenset(
                    int(m) for m in entry.get("members", [])
                )

    def _require_group(self, group_id: int) -> MembershipGroup:
        group = self._groups.get(group_id)
        if group is None:
            raise GroupError(f"Group {group_id} not found")
        return group

    def _notify(self, group_id: int, root: int, at_time: Optional[float]) -> None:
        when = self._clock.now() if at_time is None else at_time
        for listener in self._listeners:
            listener(group_id, root, when)