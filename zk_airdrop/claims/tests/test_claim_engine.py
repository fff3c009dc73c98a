"""Tests for claim authorization and settlement."""

from __future__ import annotations

import threading
import time

import pytest

from zk_airdrop.claims.clock import ManualClock
from zk_airdrop.claims.engine import ClaimEngine
from zk_airdrop.claims.events import ClaimSettled, EventBus
from zk_airdrop.claims.exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidNullifierError,
    InvalidProofError,
    InvalidRootError,
    NotFoundError,
    VerifierUnavailableError,
)
from zk_airdrop.claims.groups import MembershipGroups
from zk_airdrop.claims.nullifiers import NullifierRegistry
from zk_airdrop.claims.prover import Identity, generate_mock_proof, prove_membership
from zk_airdrop.claims.registry import AirdropRegistry
from zk_airdrop.claims.roots import MembershipRootLedger
from zk_airdrop.claims.tokens import InMemoryTokenLedger
from zk_airdrop.claims.types import ClaimStage
from zk_airdrop.claims.verifier import MockProofVerifier

RECEIVER = "0xreceiver"
HOLDER = "treasury"
TOKEN = "TKN"


def _claim(system, airdrop_id, bundle, receiver=RECEIVER):
    return system.claim(
        airdrop_id, receiver, bundle.root, bundle.nullifier_hash, bundle.proof
    )


class TestSettlement:
    def test_claim_pays_amount_to_receiver(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop(amount=1, balance=10, allowance=10)
        bundle = system.prove(identity, airdrop_id, RECEIVER)

        receipt = _claim(system, airdrop_id, bundle)

        assert receipt.amount == 1
        assert receipt.token == TOKEN
        assert receipt.receiver == RECEIVER
        assert receipt.nullifier_hash == bundle.nullifier_hash
        assert system.balance_of(TOKEN, HOLDER) == 9
        assert system.balance_of(TOKEN, RECEIVER) == 1
        assert system.tokens.allowance(TOKEN, HOLDER, system.engine.engine_address) == 9
        assert system.nullifiers.is_consumed(airdrop_id, bundle.nullifier_hash)

    def test_second_claim_with_same_nullifier_is_rejected(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        bundle = system.prove(identity, airdrop_id, RECEIVER)
        _claim(system, airdrop_id, bundle)

        with pytest.raises(InvalidNullifierError) as excinfo:
            _claim(system, airdrop_id, bundle)

        assert excinfo.value.airdrop_id == airdrop_id
        assert excinfo.value.stage == ClaimStage.PROOF_CHECKED.value
        assert system.balance_of(TOKEN, HOLDER) == 9
        assert system.balance_of(TOKEN, RECEIVER) == 1

    def test_same_member_cannot_claim_again_to_another_receiver(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        _claim(system, airdrop_id, system.prove(identity, airdrop_id, RECEIVER))

        second = system.prove(identity, airdrop_id, "0xsecond")
        with pytest.raises(InvalidNullifierError):
            _claim(system, airdrop_id, second, receiver="0xsecond")
        assert system.balance_of(TOKEN, "0xsecond") == 0

    def test_every_member_claims_once(self, system, make_airdrop):
        airdrop_id, identities = make_airdrop(members=3, amount=2, balance=10, allowance=10)

        for idx, identity in enumerate(identities):
            receiver = f"0xmember{idx}"
            _claim(system, airdrop_id, system.prove(identity, airdrop_id, receiver), receiver)

        assert system.balance_of(TOKEN, HOLDER) == 4
        assert system.nullifiers.consumed_count(airdrop_id) == 3

    def test_member_claims_each_airdrop_independently(self, system, make_airdrop):
        first_id, (identity,) = make_airdrop()
        second_id = system.create_airdrop(1, TOKEN, HOLDER, 1, manager="manager")

        a = system.prove(identity, first_id, RECEIVER)
        b = system.prove(identity, second_id, RECEIVER)
        assert a.nullifier_hash != b.nullifier_hash

        _claim(system, first_id, a)
        _claim(system, second_id, b)
        assert system.balance_of(TOKEN, RECEIVER) == 2

    def test_settlement_publishes_event(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        seen = []
        system.events.subscribe(seen.append, ClaimSettled)

        _claim(system, airdrop_id, system.prove(identity, airdrop_id, RECEIVER))

        assert len(seen) == 1
        assert seen[0].airdrop_id == airdrop_id
        assert seen[0].receiver == RECEIVER
        assert seen[0].amount == 1


class TestRootFreshness:
    def test_superseded_root_accepted_inside_window(self, system, clock, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        stale = system.prove(identity, airdrop_id, RECEIVER)

        clock.advance(10)
        system.add_member(1, Identity(nullifier=7, trapdoor=8).commitment, "admin")
        assert system.groups.get_root(1) != stale.root

        clock.advance(3599)
        _claim(system, airdrop_id, stale)
        assert system.balance_of(TOKEN, RECEIVER) == 1

    def test_superseded_root_rejected_at_window_end(self, system, clock, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        stale = system.prove(identity, airdrop_id, RECEIVER)

        clock.advance(10)
        system.add_member(1, Identity(nullifier=7, trapdoor=8).commitment, "admin")

        clock.advance(3600)
        with pytest.raises(InvalidRootError) as excinfo:
            _claim(system, airdrop_id, stale)
        assert excinfo.value.stage == ClaimStage.PENDING.value
        assert not system.nullifiers.is_consumed(airdrop_id, stale.nullifier_hash)

    def test_current_root_never_expires(self, system, clock, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        clock.advance(10 * 3600)
        _claim(system, airdrop_id, system.prove(identity, airdrop_id, RECEIVER))

    def test_unknown_root_is_rejected(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        bundle = generate_mock_proof(identity, 12345, RECEIVER, airdrop_id)
        with pytest.raises(InvalidRootError):
            _claim(system, airdrop_id, bundle)

    def test_root_of_another_group_is_rejected(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        system.create_group(2, "admin")
        system.add_member(2, identity.commitment, "admin")
        system.add_member(2, Identity(nullifier=7, trapdoor=8).commitment, "admin")
        other = generate_mock_proof(identity, system.groups.get_root(2), RECEIVER, airdrop_id)

        with pytest.raises(InvalidRootError):
            _claim(system, airdrop_id, other)

    def test_default_clocks_expire_superseded_roots(self, monkeypatch):
        now = [1_700_000_000.0]
        monkeypatch.setattr(time, "time", lambda: now[0])
        lock = threading.RLock()
        groups = MembershipGroups(lock=lock)
        roots = MembershipRootLedger(validity_window=1.0, lock=lock)
        groups.subscribe(roots.on_membership_change)
        tokens = InMemoryTokenLedger()
        engine = ClaimEngine(
            AirdropRegistry(), roots, NullifierRegistry(), MockProofVerifier(groups), tokens
        )
        identity = Identity(nullifier=41, trapdoor=42)
        groups.create_group(1, "admin")
        groups.add_member(1, identity.commitment, "admin")
        tokens.mint(TOKEN, HOLDER, 5)
        tokens.approve(TOKEN, HOLDER, engine.engine_address, 5)
        airdrop_id = engine.create_airdrop(1, TOKEN, HOLDER, 1, manager="manager")
        stale = prove_membership(identity, groups.members(1), RECEIVER, airdrop_id)

        groups.add_member(1, Identity(nullifier=43, trapdoor=44).commitment, "admin")
        now[0] += 1.5

        with pytest.raises(InvalidRootError, match="validity window"):
            _claim(engine, airdrop_id, stale)


class TestProofBinding:
    def test_wrong_receiver_is_rejected(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        bundle = system.prove(identity, airdrop_id, RECEIVER)

        with pytest.raises(InvalidProofError) as excinfo:
            _claim(system, airdrop_id, bundle, receiver="0xattacker")

        assert excinfo.value.stage == ClaimStage.ROOT_CHECKED.value
        assert system.balance_of(TOKEN, "0xattacker") == 0
        assert not system.nullifiers.is_consumed(airdrop_id, bundle.nullifier_hash)

    def test_receiver_case_does_not_change_signal(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        bundle = system.prove(identity, airdrop_id, "0xAbCdEf")
        receipt = _claim(system, airdrop_id, bundle, receiver="0xabcdef")
        assert receipt.receiver == "0xabcdef"

    @pytest.mark.parametrize("index", [0, 1, 2, 7])
    def test_flipped_proof_bit_is_rejected(self, system, make_airdrop, index):
        airdrop_id, (identity,) = make_airdrop()
        bundle = system.prove(identity, airdrop_id, RECEIVER)
        proof = list(bundle.proof)
        proof[index] ^= 1

        with pytest.raises(InvalidProofError):
            system.claim(airdrop_id, RECEIVER, bundle.root, bundle.nullifier_hash, proof)

    def test_flipped_nullifier_hash_is_rejected(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        bundle = system.prove(identity, airdrop_id, RECEIVER)

        with pytest.raises(InvalidProofError):
            system.claim(
                airdrop_id, RECEIVER, bundle.root, bundle.nullifier_hash ^ 1, bundle.proof
            )

    def test_non_member_is_rejected(self, system, make_airdrop):
        airdrop_id, _ = make_airdrop()
        outsider = Identity(nullifier=999, trapdoor=998)
        bundle = generate_mock_proof(outsider, system.groups.get_root(1), RECEIVER, airdrop_id)

        with pytest.raises(InvalidProofError):
            _claim(system, airdrop_id, bundle)
        with pytest.raises(ValueError, match="not in group"):
            prove_membership(outsider, system.groups.members(1), RECEIVER, airdrop_id)

    def test_proof_for_other_airdrop_is_rejected(self, system, make_airdrop):
        first_id, (identity,) = make_airdrop()
        second_id = system.create_airdrop(1, TOKEN, HOLDER, 1, manager="manager")
        bundle = system.prove(identity, first_id, RECEIVER)

        with pytest.raises(InvalidProofError):
            _claim(system, second_id, bundle)

    def test_rejected_proof_does_not_burn_nullifier(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        bundle = system.prove(identity, airdrop_id, RECEIVER)
        tampered = list(bundle.proof)
        tampered[5] ^= 1

        with pytest.raises(InvalidProofError):
            system.claim(airdrop_id, RECEIVER, bundle.root, bundle.nullifier_hash, tampered)
        _claim(system, airdrop_id, bundle)
        assert system.balance_of(TOKEN, RECEIVER) == 1

    @pytest.mark.parametrize(
        "proof",
        [
            [1, 2, 3, 4, 5, 6, 7],
            [1, 2, 3, 4, 5, 6, 7, 8, 9],
            [1, 2, 3, 4, 5, 6, 7, -1],
            [1, 2, 3, 4, 5, 6, 7, 2**256],
            [1, 2, 3, 4, 5, 6, 7, "8"],
        ],
    )
    def test_malformed_proof_rejected_before_verification(self, proof):
        engine, verifier, airdrop_id, root = _engine_with_spy()

        with pytest.raises(InvalidProofError, match="Malformed proof"):
            engine.claim(airdrop_id, RECEIVER, root, 1, proof)
        assert verifier.calls == 0

    def test_empty_receiver_is_rejected(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        bundle = system.prove(identity, airdrop_id, RECEIVER)
        with pytest.raises(InvalidProofError, match="receiver"):
            _claim(system, airdrop_id, bundle, receiver="")


class TestFailureAtomicity:
    def test_unknown_airdrop(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        bundle = system.prove(identity, airdrop_id, RECEIVER)

        with pytest.raises(NotFoundError):
            _claim(system, airdrop_id + 41, bundle)

    def test_missing_allowance_leaves_nullifier_unused(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop(balance=10, allowance=0)
        bundle = system.prove(identity, airdrop_id, RECEIVER)

        with pytest.raises(InsufficientAllowanceError):
            _claim(system, airdrop_id, bundle)
        assert not system.nullifiers.is_consumed(airdrop_id, bundle.nullifier_hash)
        assert system.balance_of(TOKEN, HOLDER) == 10

        system.approve(TOKEN, HOLDER, 5)
        _claim(system, airdrop_id, bundle)
        assert system.balance_of(TOKEN, RECEIVER) == 1

    def test_missing_balance_leaves_state_unchanged(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop(amount=5, balance=3, allowance=10)
        bundle = system.prove(identity, airdrop_id, RECEIVER)

        with pytest.raises(InsufficientBalanceError):
            _claim(system, airdrop_id, bundle)
        assert system.balance_of(TOKEN, HOLDER) == 3
        assert system.tokens.allowance(TOKEN, HOLDER, system.engine.engine_address) == 10
        assert not system.nullifiers.is_consumed(airdrop_id, bundle.nullifier_hash)

    def test_unavailable_verifier_propagates_without_consuming(self):
        engine, verifier, airdrop_id, root = _engine_with_spy(raises=True)
        with pytest.raises(VerifierUnavailableError):
            engine.claim(airdrop_id, RECEIVER, root, 1, [1] * 8)
        assert verifier.calls == 1

    def test_rejection_publishes_no_event(self, system, make_airdrop):
        airdrop_id, (identity,) = make_airdrop()
        seen = []
        system.events.subscribe(seen.append)
        bundle = system.prove(identity, airdrop_id, RECEIVER)

        with pytest.raises(InvalidProofError):
            _claim(system, airdrop_id, bundle, receiver="0xother")
        assert [e for e in seen if isinstance(e, ClaimSettled)] == []


def test_concurrent_duplicate_claims_settle_once(system, make_airdrop):
    airdrop_id, (identity,) = make_airdrop(amount=1, balance=100, allowance=100)
    bundle = system.prove(identity, airdrop_id, RECEIVER)
    barrier = threading.Barrier(8)
    outcomes = []
    outcomes_lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            _claim(system, airdrop_id, bundle)
            result = "ok"
        except InvalidNullifierError:
            result = "replay"
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("replay") == 7
    assert system.balance_of(TOKEN, RECEIVER) == 1


class _SpyVerifier:
    def __init__(self, result: bool = True, raises: bool = False) -> None:
        self.result = result
        self.raises = raises
        self.calls = 0

    def verify(self, root, signal, external_nullifier, nullifier_hash, proof) -> bool:
        self.calls += 1
        if self.raises:
            raise VerifierUnavailableError("verifier offline")
        return self.result


def _engine_with_spy(raises: bool = False):
    clock = ManualClock(0.0)
    lock = threading.RLock()
    groups = MembershipGroups(clock=clock, lock=lock)
    roots = MembershipRootLedger(lock=lock)
    groups.subscribe(roots.on_membership_change)
    root = groups.create_group(1, "admin")

    registry = AirdropRegistry()
    tokens = InMemoryTokenLedger()
    verifier = _SpyVerifier(raises=raises)
    engine = ClaimEngine(
        registry,
        roots,
        NullifierRegistry(),
        verifier,
        tokens,
        clock=clock,
        events=EventBus(),
    )
    airdrop_id = engine.create_airdrop(1, TOKEN, HOLDER, 1, manager="manager")
    return engine, verifier, airdrop_id, root
