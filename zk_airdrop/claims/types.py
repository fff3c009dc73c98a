"""
Common types for airdrop claims.

This module provides:
1. Airdrop - immutable airdrop record
2. RootRecord - one entry of a group's root history
3. ClaimStage - progress of a single claim attempt
4. ClaimReceipt - return value of a settled claim
5. ProofBundle - (root, nullifier_hash, proof) produced by a prover
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from .config import PROOF_ELEMENTS
from .hashing import is_field_element

Proof = Tuple[int, int, int, int, int, int, int, int]


@dataclass(frozen=True)
class Airdrop:
    """
    A pre-funded grant claimable once per group member.

    ``amount`` is paid on every successful claim; it is not a pool.
    """

    airdrop_id: int
    group_id: int
    token: str
    manager: str
    holder: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "airdrop_id": self.airdrop_id,
            "group_id": self.group_id,
            "token": self.token,
            "manager": self.manager,
            "holder": self.holder,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Airdrop":
        return cls(
            airdrop_id=int(data["airdrop_id"]),
            group_id=int(data["group_id"]),
            token=str(data["token"]),
            manager=str(data["manager"]),
            holder=str(data["holder"]),
            amount=int(data["amount"]),
        )


@dataclass(frozen=True)
class RootRecord:
    """
    Root history entry.

    ``superseded_at`` is None while the root is current.
    """

    root: int
    created_at: float
    superseded_at: Optional[float] = None

    @property
    def is_current(self) -> bool:
        return self.superseded_at is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root,
            "created_at": self.created_at,
            "superseded_at": self.superseded_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RootRecord":
        superseded = data.get("superseded_at")
        return cls(
            root=int(data["root"]),
            created_at=float(data["created_at"]),
            superseded_at=None if superseded is None else float(superseded),
        )


class ClaimStage(Enum):
    """
    Stages of a claim attempt, in the order they are reached.

    A claim that fails any check ends in REJECTED; the rejection records the
    last stage reached before it.
    """

    PENDING = "pending"
    ROOT_CHECKED = "root_checked"
    PROOF_CHECKED = "proof_checked"
    NULLIFIER_CONSUMED = "nullifier_consumed"
    SETTLED = "settled"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ClaimReceipt:
    airdrop_id: int
    receiver: str
    token: str
    amount: int
    nullifier_hash: int
    root: int
    settled_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "airdrop_id": self.airdrop_id,
            "receiver": self.receiver,
            "token": self.token,
            "amount": self.amount,
            "nullifier_hash": self.nullifier_hash,
            "root": self.root,
            "settled_at": self.settled_at,
        }


@dataclass(frozen=True)
class ProofBundle:
    """Public outputs a claimant submits alongside the airdrop id and receiver."""

    root: int
    nullifier_hash: int
    proof: Proof

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": str(self.root),
            "nullifier_hash": str(self.nullifier_hash),
            "proof": [str(p) for p in self.proof],
        }


def normalize_proof(proof: Iterable[Any]) -> Proof:
    """
    Coerce a proof into a tuple of exactly eight field elements.

    Raises:
        ValueError: If the proof has the wrong length or an element is not a
            field element.
    """
    try:
        elements = tuple(proof)
    except TypeError as exc:
        raise ValueError("proof must be a sequence of field elements") from exc
    if len(elements) != PROOF_ELEMENTS:
        raise ValueError(
            f"proof must have {PROOF_ELEMENTS} elements, got {len(elements)}"
        )
    for idx, element in enumerate(elements):
        if not is_field_element(element):
            raise ValueError(f"proof[{idx}] is not a field element")
    return elements  # type: ignore[return-value]
