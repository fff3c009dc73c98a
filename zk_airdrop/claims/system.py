"""
Wiring and persistence for a complete in-process airdrop deployment.

``AirdropSystem.build`` connects the collaborators the claim engine needs:
membership groups feed the root ledger, the ledger and groups share one
re-entrant lock, and all components publish to a single ``EventBus``. The
whole state can be persisted as a versioned CBOR document.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import cbor2

from .clock import Clock, WallClock
from .config import SNAPSHOT_VERSION, EngineConfig
from .engine import ClaimEngine
from .events import EventBus
from .exceptions import ConfigurationError
from .factory import get_verifier
from .groups import MembershipGroups
from .nullifiers import NullifierRegistry
from .prover import Identity, prove_membership
from .registry import AirdropRegistry
from .roots import MembershipRootLedger
from .tokens import InMemoryTokenLedger
from .types import Airdrop, ClaimReceipt, ProofBundle
from .verifier import ProofVerifier, VerifierOptions

logger = logging.getLogger(__name__)

_SECTIONS = ("config", "groups", "roots", "nullifiers", "tokens", "airdrops")


@dataclass
class AirdropSystem:
    config: EngineConfig
    clock: Clock
    events: EventBus
    groups: MembershipGroups
    roots: MembershipRootLedger
    nullifiers: NullifierRegistry
    tokens: InMemoryTokenLedger
    registry: AirdropRegistry
    engine: ClaimEngine
    _save_lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    @classmethod
    def build(
        cls,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        verifier: Optional[ProofVerifier] = None,
    ) -> "AirdropSystem":
        """
        Assemble a fresh system.

        Args:
            config: Engine configuration (defaults if omitted).
            clock: Time source; wall clock by default so persisted root
                timestamps stay meaningful across processes.
            verifier: Explicit verifier; otherwise chosen by ``get_verifier``
                from the configured backend and feature flags.
        """
        config = (config or EngineConfig()).validate()
        clock = clock or WallClock()
        events = EventBus()
        lock = threading.RLock()

        groups = MembershipGroups(clock=clock, lock=lock)
        roots = MembershipRootLedger(
            config.root_validity_window,
            config.root_history_capacity,
            lock=lock,
            events=events,
        )
        groups.subscribe(roots.on_membership_change)

        if verifier is None:
            verifier = get_verifier(
                VerifierOptions(
                    membership=groups,
                    verification_key=config.verification_key,
                    snarkjs_bin=config.snarkjs_bin,
                    timeout=config.verifier_timeout,
                ),
                prefer=config.verifier_backend,
            )

        nullifiers = NullifierRegistry()
        tokens = InMemoryTokenLedger()
        registry = AirdropRegistry(events=events)
        engine = ClaimEngine(
            registry,
            roots,
            nullifiers,
            verifier,
            tokens,
            clock=clock,
            events=events,
            engine_address=config.engine_address,
        )
        logger.debug(
            "Built airdrop system (verifier=%s, window=%gs, capacity=%d)",
            type(verifier).__name__,
            config.root_validity_window,
            config.root_history_capacity,
        )
        return cls(
            config=config,
            clock=clock,
            events=events,
            groups=groups,
            roots=roots,
            nullifiers=nullifiers,
            tokens=tokens,
            registry=registry,
            engine=engine,
        )

    # Membership

    def create_group(self, group_id: int, admin: str) -> int:
        return self.groups.create_group(group_id, admin)

    def add_member(self, group_id: int, commitment: int, admin: str) -> int:
        return self.groups.add_member(group_id, commitment, admin)

    # Tokens

    def mint(self, token: str, account: str, amount: int) -> int:
        return self.tokens.mint(token, account, amount)

    def approve(
        self, token: str, owner: str, amount: int, spender: Optional[str] = None
    ) -> None:
        """Approve ``spender`` (the engine by default) to draw ``amount``."""
        self.tokens.approve(token, owner, spender or self.engine.engine_address, amount)

    def balance_of(self, token: str, account: str) -> int:
        return self.tokens.balance_of(token, account)

    # Airdrops

    def create_airdrop(
        self, group_id: int, token: str, holder: str, amount: int, *, manager: str
    ) -> int:
        return self.engine.create_airdrop(group_id, token, holder, amount, manager=manager)

    def get_airdrop(self, airdrop_id: int) -> Airdrop:
        return self.engine.get_airdrop(airdrop_id)

    def list_airdrops(self) -> List[Airdrop]:
        return self.registry.list_airdrops()

    def prove(self, identity: Identity, airdrop_id: int, receiver: str) -> ProofBundle:
        """
        Build a mock proof for ``identity`` against the current root of the
        airdrop's group.
        """
        airdrop = self.get_airdrop(airdrop_id)
        members = self.groups.members(airdrop.group_id)
        return prove_membership(identity, members, receiver, airdrop_id)

    def claim(
        self,
        airdrop_id: int,
        receiver: str,
        root: int,
        nullifier_hash: int,
        proof: Sequence[int],
    ) -> ClaimReceipt:
        return self.engine.claim(airdrop_id, receiver, root, nullifier_hash, proof)

    # Persistence

    def snapshot(self) -> Dict[str, Any]:
        with self.roots.lock:
            return {
                "version": SNAPSHOT_VERSION,
                "config": self.config.to_dict(),
                "groups": self.groups.to_dict(),
                "roots": self.roots.to_dict(),
                "nullifiers": self.nullifiers.to_dict(),
                "tokens": self.tokens.to_dict(),
                "airdrops": self.registry.to_dict(),
            }

    def restore(self, data: Dict[str, Any]) -> None:
        """
        Replace all state with a ``snapshot`` document.

        The configuration section is not applied; build the system from it
        first (``load`` does this).

        Raises:
            ConfigurationError: If the document version is unsupported or a
                section is malformed.
        """
        _check_document(data)
        with self.roots.lock:
            try:
                self.groups.load_dict(data["groups"])
                self.roots.load_dict(data["roots"])
                self.nullifiers.load_dict(data["nullifiers"])
                self.tokens.load_dict(data["tokens"])
                self.registry.load_dict(data["airdrops"])
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigurationError(f"Malformed state snapshot: {exc}") from exc

    def save(self, path: str | Path) -> None:
        """
        Atomically replace ``path`` with the current state.

        Concurrent saves are serialized from snapshot to rename, so the file
        always ends up holding the newest snapshot.
        """
        target = Path(path)
        with self._save_lock:
            blob = cbor2.dumps(self.snapshot())
            with tempfile.NamedTemporaryFile(
                dir=target.parent, prefix=target.name + ".", suffix=".tmp", delete=False
            ) as fh:
                fh.write(blob)
            try:
                os.replace(fh.name, target)
            except OSError:
                os.unlink(fh.name)
                raise
        logger.debug("Saved state to %s (%d bytes)", target, len(blob))

    @classmethod
    def load(
        cls,
        path: str | Path,
        *,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        verifier: Optional[ProofVerifier] = None,
    ) -> "AirdropSystem":
        """
        Rebuild a system from a file written by ``save``.

        ``config`` replaces the stored configuration when given.

        Raises:
            ConfigurationError: If the file is missing, not CBOR or malformed.
        """
        source = Path(path)
        if not source.exists():
            raise ConfigurationError(f"State file not found: {source}")
        try:
            data = cbor2.loads(source.read_bytes())
        except cbor2.CBORDecodeError as exc:
            raise ConfigurationError(f"State file {source} is not valid CBOR") from exc

        _check_document(data)
        if config is None:
            config = EngineConfig.from_dict(data["config"])
        system = cls.build(config, clock=clock, verifier=verifier)
        system.restore(data)
        logger.debug("Loaded state from %s", source)
        return system


def _check_document(data: Any) -> None:
    if not isinstance(data, dict):
        raise ConfigurationError("State snapshot must be a mapping")
    version = data.get("version")
    if version != SNAPSHOT_VERSION:
        raise ConfigurationError(f"Unsupported state snapshot version: {version!r}")
    missing = [s for s in _SECTIONS if s not in data]
    if missing:
        raise ConfigurationError(f"State snapshot missing sections: {', '.join(missing)}")
