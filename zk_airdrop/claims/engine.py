"""
Claim engine: authorizes one claim per (airdrop, nullifier) and releases funds.

A claim runs these steps in order and stops at the first failure:

1. look up the airdrop                      -> NotFoundError
2. check the root against the group history -> InvalidRootError
3. verify the proof, with the receiver as signal and the airdrop-derived
   external nullifier                       -> InvalidProofError
4. reserve the nullifier                    -> InvalidNullifierError
5. transfer the payout from the holder      -> TransferError
6. commit the nullifier and publish ClaimSettled

Steps 4 and 5 form one unit: the reservation commits only if the transfer
succeeded, so an invalid proof never burns a nullifier and a failed transfer
leaves the nullifier unused. The whole claim runs under the root ledger's
lock, which membership changes also take, so every claim observes one
consistent snapshot.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .clock import Clock, WallClock
from .config import DEFAULT_ENGINE_ADDRESS
from .events import ClaimSettled, EventBus
from .exceptions import (
    ClaimRejected,
    InvalidProofError,
    InvalidRootError,
    NotFoundError,
    TransferError,
)
from .hashing import derive_external_nullifier, hash_address, is_field_element
from .nullifiers import NullifierRegistry
from .registry import AirdropRegistry
from .roots import MembershipRootLedger
from .tokens import TokenLedger
from .types import Airdrop, ClaimReceipt, ClaimStage, normalize_proof
from .verifier import ProofVerifier

logger = logging.getLogger(__name__)


class _ClaimAttempt:
    """Transient per-claim state; never stored."""

    def __init__(self, airdrop_id: int) -> None:
        self.airdrop_id = airdrop_id
        self.stage = ClaimStage.PENDING

    def advance(self, stage: ClaimStage) -> None:
        logger.debug("Claim on airdrop %s: %s -> %s", self.airdrop_id, self.stage.value, stage.value)
        self.stage = stage


class ClaimEngine:
    def __init__(
        self,
        registry: AirdropRegistry,
        roots: MembershipRootLedger,
        nullifiers: NullifierRegistry,
        verifier: ProofVerifier,
        tokens: TokenLedger,
        *,
        clock: Optional[Clock] = None,
        events: Optional[EventBus] = None,
        engine_address: str = DEFAULT_ENGINE_ADDRESS,
    ) -> None:
        self._registry = registry
        self._roots = roots
        self._nullifiers = nullifiers
        self._verifier = verifier
        self._tokens = tokens
        self._clock = clock or WallClock()
        self._events = events
        self._address = engine_address

    @property
    def engine_address(self) -> str:
        """Spender holders must approve so claims can draw on their balance."""
        return self._address

    def create_airdrop(
        self,
        group_id: int,
        token: str,
        holder: str,
        amount: int,
        *,
        manager: str,
    ) -> int:
        return self._registry.create(group_id, token, holder, amount, manager=manager)

    def get_airdrop(self, airdrop_id: int) -> Airdrop:
        return self._registry.get(airdrop_id)

    def claim(
        self,
        airdrop_id: int,
        receiver: str,
        root: int,
        nullifier_hash: int,
        proof: Sequence[int],
    ) -> ClaimReceipt:
        """
        Authorize and settle one claim.

        Returns:
            ClaimReceipt describing the settled transfer.

        Raises:
            NotFoundError: Unknown airdrop.
            InvalidRootError: Root unknown for the group or expired.
            InvalidProofError: Malformed inputs or verifier rejection.
            InvalidNullifierError: Nullifier already used for this airdrop.
            TransferError: Token ledger refused the payout.
        """
        attempt = _ClaimAttempt(airdrop_id)
        with self._roots.lock:
            try:
                receipt = self._run(attempt, receiver, root, nullifier_hash, proof)
            except ClaimRejected as exc:
                if exc.airdrop_id is None:
                    exc.airdrop_id = airdrop_id
                if exc.stage is None:
                    exc.stage = attempt.stage.value
                attempt.advance(ClaimStage.REJECTED)
                logger.info(
                    "Rejected claim on airdrop %s after %s: %s (%s)",
                    airdrop_id,
                    exc.stage,
                    type(exc).__name__,
                    exc,
                )
                raise
            except (NotFoundError, TransferError) as exc:
                attempt.advance(ClaimStage.REJECTED)
                logger.info(
                    "Rejected claim on airdrop %s: %s (%s)",
                    airdrop_id,
                    type(exc).__name__,
                    exc,
                )
                raise

        logger.info(
            "Settled claim on airdrop %s: %d %s to %s",
            airdrop_id,
            receipt.amount,
            receipt.token,
            receiver,
        )
        if self._events is not None:
            self._events.publish(
                ClaimSettled(
                    airdrop_id=receipt.airdrop_id,
                    receiver=receipt.receiver,
                    token=receipt.token,
                    amount=receipt.amount,
                    nullifier_hash=receipt.nullifier_hash,
                    settled_at=receipt.settled_at,
                )
            )
        return receipt

    def _run(
        self,
        attempt: _ClaimAttempt,
        receiver: str,
        root: int,
        nullifier_hash: int,
        proof: Sequence[int],
    ) -> ClaimReceipt:
        airdrop = self._registry.get(attempt.airdrop_id)

        if not is_field_element(root):
            raise InvalidRootError("Root must be a SNARK field element")
        now = self._clock.now()
        self._roots.check(airdrop.group_id, root, now)
        attempt.advance(ClaimStage.ROOT_CHECKED)

        try:
            signal = hash_address(receiver)
        except ValueError as exc:
            raise InvalidProofError(f"Invalid receiver: {exc}") from exc
        if not is_field_element(nullifier_hash):
            raise InvalidProofError("Nullifier hash must be a SNARK field element")
        try:
            elements = normalize_proof(proof)
        except ValueError as exc:
            raise InvalidProofError(f"Malformed proof: {exc}") from exc

        external_nullifier = derive_external_nullifier(airdrop.airdrop_id)
        if not self._verifier.verify(root, signal, external_nullifier, nullifier_hash, elements):
            raise InvalidProofError("Proof verification failed")
        attempt.advance(ClaimStage.PROOF_CHECKED)

        with self._nullifiers.reserve(airdrop.airdrop_id, nullifier_hash):
            attempt.advance(ClaimStage.NULLIFIER_CONSUMED)
            self._tokens.transfer_from(
                airdrop.token,
                self._address,
                airdrop.holder,
                receiver,
                airdrop.amount,
            )
        attempt.advance(ClaimStage.SETTLED)

        return ClaimReceipt(
            airdrop_id=airdrop.airdrop_id,
            receiver=receiver,
            token=airdrop.token,
            amount=airdrop.amount,
            nullifier_hash=nullifier_hash,
            root=root,
            settled_at=now,
        )
