"""Tests for system wiring and CBOR state persistence."""

from __future__ import annotations

import threading

import cbor2
import pytest

from zk_airdrop.claims.clock import ManualClock
from zk_airdrop.claims.config import SNAPSHOT_VERSION, EngineConfig
from zk_airdrop.claims.events import AirdropCreated, ClaimSettled, RootAdvanced
from zk_airdrop.claims.exceptions import ConfigurationError, InvalidNullifierError
from zk_airdrop.claims.prover import Identity
from zk_airdrop.claims.system import AirdropSystem
from zk_airdrop.claims.verifier import MockProofVerifier

RECEIVER = "0xreceiver"


def test_build_shares_one_lock_between_groups_and_roots(system):
    assert isinstance(system.engine._verifier, MockProofVerifier)
    assert system.groups._lock is system.roots.lock
    assert isinstance(system.roots.lock, type(threading.RLock()))


def test_build_applies_root_policy(clock):
    system = AirdropSystem.build(
        EngineConfig(root_validity_window=5.0, root_history_capacity=2), clock=clock
    )
    assert system.roots.validity_window == 5.0
    assert system.roots.capacity == 2


def test_admissions_reach_root_ledger_and_events(system):
    seen = []
    system.events.subscribe(seen.append)

    system.create_group(1, "admin")
    root = system.add_member(1, Identity(1, 2).commitment, "admin")
    system.create_airdrop(1, "TKN", "holder", 1, manager="m")

    assert system.roots.current_root(1) == root
    assert [type(e) for e in seen] == [RootAdvanced, RootAdvanced, AirdropCreated]


def test_state_survives_save_and_load(tmp_path, system, clock, make_airdrop):
    airdrop_id, (identity,) = make_airdrop()
    bundle = system.prove(identity, airdrop_id, RECEIVER)
    system.claim(airdrop_id, RECEIVER, bundle.root, bundle.nullifier_hash, bundle.proof)
    path = tmp_path / "state.cbor"
    system.save(path)

    restored = AirdropSystem.load(path, clock=clock)

    assert restored.balance_of("TKN", RECEIVER) == 1
    assert restored.balance_of("TKN", "treasury") == 9
    assert restored.get_airdrop(airdrop_id) == system.get_airdrop(airdrop_id)
    assert restored.roots.history(1) == system.roots.history(1)
    with pytest.raises(InvalidNullifierError):
        restored.claim(airdrop_id, RECEIVER, bundle.root, bundle.nullifier_hash, bundle.proof)
    assert restored.create_airdrop(1, "TKN", "treasury", 1, manager="m") == airdrop_id + 1


def test_restored_system_accepts_new_members_and_claims(tmp_path, system, clock, make_airdrop):
    airdrop_id, _ = make_airdrop()
    path = tmp_path / "state.cbor"
    system.save(path)

    restored = AirdropSystem.load(path, clock=clock)
    newcomer = Identity(nullifier=500, trapdoor=600)
    clock.advance(1)
    restored.add_member(1, newcomer.commitment, "admin")
    bundle = restored.prove(newcomer, airdrop_id, RECEIVER)
    receipt = restored.claim(
        airdrop_id, RECEIVER, bundle.root, bundle.nullifier_hash, bundle.proof
    )
    assert receipt.amount == 1


def test_load_uses_stored_config(tmp_path, clock):
    system = AirdropSystem.build(EngineConfig(root_history_capacity=3), clock=clock)
    path = tmp_path / "state.cbor"
    system.save(path)

    assert AirdropSystem.load(path, clock=clock).config.root_history_capacity == 3
    overridden = AirdropSystem.load(path, clock=clock, config=EngineConfig())
    assert overridden.config.root_history_capacity == 30


def test_save_leaves_no_temporary_file(tmp_path, system):
    system.save(tmp_path / "state.cbor")
    assert [p.name for p in tmp_path.iterdir()] == ["state.cbor"]


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        AirdropSystem.load(tmp_path / "absent.cbor")


def test_load_rejects_non_cbor(tmp_path):
    path = tmp_path / "state.cbor"
    path.write_bytes(b"\x82\x01")
    with pytest.raises(ConfigurationError):
        AirdropSystem.load(path)


def test_load_rejects_unknown_version(tmp_path, system):
    data = system.snapshot()
    data["version"] = SNAPSHOT_VERSION + 1
    path = tmp_path / "state.cbor"
    path.write_bytes(cbor2.dumps(data))
    with pytest.raises(ConfigurationError, match="version"):
        AirdropSystem.load(path)


def test_restore_rejects_missing_sections(system):
    data = system.snapshot()
    del data["nullifiers"]
    with pytest.raises(ConfigurationError, match="nullifiers"):
        system.restore(data)


def test_restore_rejects_malformed_section(system):
    data = system.snapshot()
    data["airdrops"] = {"airdrops": [{"airdrop_id": 1}]}
    with pytest.raises(ConfigurationError, match="Malformed"):
        system.restore(data)


def test_approve_defaults_to_engine_spender(system):
    system.mint("TKN", "holder", 5)
    system.approve("TKN", "holder", 5)
    assert system.tokens.allowance("TKN", "holder", system.engine.engine_address) == 5
    assert system.engine.engine_address == EngineConfig().engine_address


def test_manual_clock_drives_root_timestamps():
    clock = ManualClock(42.0)
    system = AirdropSystem.build(clock=clock)
    system.create_group(1, "admin")
    assert system.roots.history(1)[0].created_at == 42.0


def test_saves_from_concurrent_settlements_keep_every_nullifier(tmp_path, system, make_airdrop):
    airdrop_id, identities = make_airdrop(members=40, balance=40, allowance=40)
    bundles = [
        (f"0xmember{i}", system.prove(identity, airdrop_id, f"0xmember{i}"))
        for i, identity in enumerate(identities)
    ]
    path = tmp_path / "state.cbor"
    system.events.subscribe(lambda _event: system.save(path), ClaimSettled)
    start = threading.Barrier(len(bundles))

    def _settle(receiver, bundle):
        start.wait()
        system.claim(airdrop_id, receiver, bundle.root, bundle.nullifier_hash, bundle.proof)

    threads = [threading.Thread(target=_settle, args=pair) for pair in bundles]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert system.events.metrics()["handler_errors"] == 0
    assert [p.name for p in tmp_path.iterdir()] == ["state.cbor"]
    restored = AirdropSystem.load(path, clock=system.clock)
    assert restored.nullifiers.consumed_count(airdrop_id) == 40
    assert restored.balance_of("TKN", "treasury") == 0
