"""Public API for zk_airdrop.claims.

WARNING: the default ``mock`` verifier accepts transparent proofs that reveal
the claimant's identity. Select the ``snarkjs`` backend for real Groth16
verification.
"""
from __future__ import annotations

from .clock import Clock, ManualClock, MonotonicClock, WallClock
from .config import EngineConfig, load_config
from .engine import ClaimEngine
from .events import AirdropCreated, ClaimSettled, Event, EventBus, RootAdvanced
from .exceptions import (
    AirdropError,
    ClaimRejected,
    ConfigurationError,
    GroupError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidNullifierError,
    InvalidProofError,
    InvalidRootError,
    NotFoundError,
    TransferError,
    VerifierUnavailableError,
)
from .factory import get_verifier
from .feature_flags import get_verifier_backend, set_verifier_backend
from .groups import MembershipGroups
from .hashing import derive_external_nullifier, hash_address, hash_to_field
from .nullifiers import NullifierRegistry
from .prover import Identity, generate_mock_proof, prove_membership
from .registry import AirdropRegistry
from .roots import MembershipRootLedger
from .system import AirdropSystem
from .tokens import InMemoryTokenLedger, TokenLedger
from .types import Airdrop, ClaimReceipt, ClaimStage, ProofBundle, RootRecord
from .verifier import MockProofVerifier, ProofVerifier, SnarkjsVerifier, VerifierOptions

__all__ = [
    "Airdrop",
    "AirdropCreated",
    "AirdropError",
    "AirdropRegistry",
    "AirdropSystem",
    "ClaimEngine",
    "ClaimReceipt",
    "ClaimRejected",
    "ClaimSettled",
    "ClaimStage",
    "Clock",
    "ConfigurationError",
    "EngineConfig",
    "Event",
    "EventBus",
    "GroupError",
    "Identity",
    "InMemoryTokenLedger",
    "InsufficientAllowanceError",
    "InsufficientBalanceError",
    "InvalidAmountError",
    "InvalidNullifierError",
    "InvalidProofError",
    "InvalidRootError",
    "ManualClock",
    "MembershipGroups",
    "MembershipRootLedger",
    "MockProofVerifier",
    "MonotonicClock",
    "NotFoundError",
    "NullifierRegistry",
    "ProofBundle",
    "ProofVerifier",
    "RootAdvanced",
    "RootRecord",
    "SnarkjsVerifier",
    "TokenLedger",
    "TransferError",
    "VerifierOptions",
    "VerifierUnavailableError",
    "WallClock",
    "derive_external_nullifier",
    "generate_mock_proof",
    "get_verifier",
    "get_verifier_backend",
    "hash_address",
    "hash_to_field",
    "load_config",
    "prove_membership",
    "set_verifier_backend",
]
