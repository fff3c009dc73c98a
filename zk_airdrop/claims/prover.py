"""
Identities and transparent mock proofs.

WARNING: mock proofs reveal the identity secrets in the clear. They exercise
the claim pipeline (root, signal and nullifier binding) without a proof
system and must never be used where anonymity matters. Production claimants
generate Groth16 proofs off-system and the engine checks them with
``SnarkjsVerifier``.

Mock proof layout (8 field elements):
    [0] identity nullifier
    [1] identity trapdoor
    [2..7] binding tag over (root, signal, external_nullifier,
           nullifier_hash, commitment)
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Sequence, Tuple

from .config import IDENTITY_DOMAIN, NULLIFIER_DOMAIN, SNARK_SCALAR_FIELD
from .hashing import derive_external_nullifier, hash_address, hash_fields
from .merkle import digest_to_field, hash_leaf, membership_path, verify_path
from .types import ProofBundle

_MOCK_BINDING_DOMAIN = b"ZK_AIRDROP_V1_MOCK_BINDING_"
_BINDING_ELEMENTS = 6


@dataclass(frozen=True)
class Identity:
    """
    Member secret (nullifier, trapdoor) and its public commitment.
    """

    nullifier: int
    trapdoor: int

    @property
    def commitment(self) -> int:
        return identity_commitment(self.nullifier, self.trapdoor)

    @classmethod
    def generate(cls) -> "Identity":
        return cls(
            nullifier=secrets.randbelow(SNARK_SCALAR_FIELD),
            trapdoor=secrets.randbelow(SNARK_SCALAR_FIELD),
        )


def identity_commitment(nullifier: int, trapdoor: int) -> int:
    return hash_fields(IDENTITY_DOMAIN, nullifier, trapdoor)


def nullifier_hash_for(identity_nullifier: int, external_nullifier: int) -> int:
    """Deterministic per-(identity, scope) replay tag."""
    return hash_fields(NULLIFIER_DOMAIN, external_nullifier, identity_nullifier)


def mock_binding(
    root: int,
    signal: int,
    external_nullifier: int,
    nullifier_hash: int,
    commitment: int,
) -> Tuple[int, ...]:
    return tuple(
        hash_fields(
            _MOCK_BINDING_DOMAIN + bytes([idx]),
            root,
            signal,
            external_nullifier,
            nullifier_hash,
            commitment,
        )
        for idx in range(_BINDING_ELEMENTS)
    )


def generate_mock_proof(
    identity: Identity, root: int, receiver: str, airdrop_id: int
) -> ProofBundle:
    """
    Build a mock proof against ``root`` without checking membership.

    A proof for a root that does not contain ``identity`` is produced anyway;
    the verifier rejects it.
    """
    signal = hash_address(receiver)
    external_nullifier = derive_external_nullifier(airdrop_id)
    nullifier_hash = nullifier_hash_for(identity.nullifier, external_nullifier)
    binding = mock_binding(
        root, signal, external_nullifier, nullifier_hash, identity.commitment
    )
    proof = (identity.nullifier, identity.trapdoor) + binding
    return ProofBundle(root=root, nullifier_hash=nullifier_hash, proof=proof)  # type: ignore[arg-type]


def prove_membership(
    identity: Identity,
    commitments: Sequence[int],
    receiver: str,
    airdrop_id: int,
) -> ProofBundle:
    """
    Build a mock proof against the root of ``commitments``.

    Raises:
        ValueError: If the identity is not among ``commitments``.
    """
    commitment = identity.commitment
    try:
        index = list(commitments).index(commitment)
    except ValueError:
        raise ValueError("Identity not in group") from None

    root_digest, path = membership_path(commitments, index)
    if not verify_path(hash_leaf(commitment), path, root_digest):
        raise ValueError("Membership path does not match group root")
    return generate_mock_proof(
        identity, digest_to_field(root_digest), receiver, airdrop_id
    )
