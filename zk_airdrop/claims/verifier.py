"""
Proof verifier capability and backends.

A verifier answers one question: does ``proof`` show membership in the group
summarized by ``root``, bound to ``signal`` and ``external_nullifier`` and
producing ``nullifier_hash``? Backends return False on any rejection and
raise only when verification itself could not run.
"""

from __future__ import annotations

import json
import logging
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, FrozenSet, Optional, Protocol, Sequence, runtime_checkable

from .config import DEFAULT_SNARKJS_BIN, DEFAULT_VERIFIER_TIMEOUT
from .exceptions import VerifierUnavailableError
from .prover import identity_commitment, mock_binding, nullifier_hash_for
from .types import normalize_proof

logger = logging.getLogger(__name__)


@runtime_checkable
class ProofVerifier(Protocol):
    def verify(
        self,
        root: int,
        signal: int,
        external_nullifier: int,
        nullifier_hash: int,
        proof: Sequence[int],
    ) -> bool:
        ...


class MembershipSource(Protocol):
    def members_at_root(self, root: int) -> FrozenSet[int]:
        ...


@dataclass(frozen=True)
class VerifierOptions:
    """Construction inputs shared by all backends; each uses what it needs."""

    membership: Optional[MembershipSource] = None
    verification_key: Optional[str] = None
    snarkjs_bin: str = DEFAULT_SNARKJS_BIN
    timeout: float = DEFAULT_VERIFIER_TIMEOUT


class MockProofVerifier:
    """
    Verifier for transparent mock proofs (see ``prover``).

    Notes:
    - For tests and demos only; it provides no zero-knowledge.
    - Membership is answered by ``membership.members_at_root``.
    """

    def __init__(self, membership: MembershipSource) -> None:
        self._membership = membership

    @classmethod
    def from_options(cls, options: VerifierOptions) -> "MockProofVerifier":
        if options.membership is None:
            raise ValueError("mock verifier requires a membership source")
        return cls(options.membership)

    def verify(
        self,
        root: int,
        signal: int,
        external_nullifier: int,
        nullifier_hash: int,
        proof: Sequence[int],
    ) -> bool:
        try:
            elements = normalize_proof(proof)
        except ValueError:
            return False

        identity_nullifier, trapdoor = elements[0], elements[1]
        commitment = identity_commitment(identity_nullifier, trapdoor)
        if commitment not in self._membership.members_at_root(root):
            return False
        if nullifier_hash != nullifier_hash_for(identity_nullifier, external_nullifier):
            return False
        expected = mock_binding(
            root, signal, external_nullifier, nullifier_hash, commitment
        )
        return tuple(elements[2:]) == expected


class SnarkjsVerifier:
    """
    Groth16 verification through the ``snarkjs`` command line.

    Public signals are passed in the circuit order
    (root, nullifier_hash, signal, external_nullifier).
    """

    def __init__(
        self,
        verification_key: str | Path,
        snarkjs_bin: str = DEFAULT_SNARKJS_BIN,
        timeout: float = DEFAULT_VERIFIER_TIMEOUT,
    ) -> None:
        self._vk_path = Path(verification_key)
        self._bin = snarkjs_bin
        self._timeout = timeout

    @classmethod
    def from_options(cls, options: VerifierOptions) -> "SnarkjsVerifier":
        if not options.verification_key:
            raise ValueError("snarkjs verifier requires a verification key path")
        return cls(options.verification_key, options.snarkjs_bin, options.timeout)

    def verify(
        self,
        root: int,
        signal: int,
        external_nullifier: int,
        nullifier_hash: int,
        proof: Sequence[int],
    ) -> bool:
        try:
            elements = normalize_proof(proof)
        except ValueError:
            return False
        if not self._vk_path.exists():
            raise VerifierUnavailableError(f"missing verification key: {self._vk_path}")

        public_signals = [str(root), str(nullifier_hash), str(signal), str(external_nullifier)]
        with tempfile.TemporaryDirectory() as tmp_dir:
            public_path = Path(tmp_dir) / "public.json"
            proof_path = Path(tmp_dir) / "proof.json"
            public_path.write_text(json.dumps(public_signals))
            proof_path.write_text(json.dumps(unpack_groth16_proof(elements)))
            result = self._run(public_path, proof_path)

        accepted = result.returncode == 0 and "OK" in result.stdout
        if not accepted:
            logger.debug(
                "snarkjs rejected proof (exit=%s): %s",
                result.returncode,
                (result.stderr or result.stdout).strip()[:200],
            )
        return accepted

    def _run(self, public_path: Path, proof_path: Path) -> subprocess.CompletedProcess:
        command = [
            self._bin,
            "groth16",
            "verify",
            str(self._vk_path),
            str(public_path),
            str(proof_path),
        ]
        try:
            return subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=False,
                timeout=self._timeout,
            )
        except FileNotFoundError as exc:
            raise VerifierUnavailableError(f"snarkjs not found: {self._bin}") from exc
        except subprocess.TimeoutExpired as exc:
            raise VerifierUnavailableError(
                f"snarkjs verification timed out after {self._timeout}s"
            ) from exc


def unpack_groth16_proof(elements: Sequence[int]) -> dict[str, Any]:
    """
    Expand a packed 8-element proof into snarkjs JSON.

    The packed form stores each G2 coordinate pair reversed, as Solidity
    verifiers expect.
    """
    p = [str(e) for e in elements]
    return {
        "pi_a": [p[0], p[1], "1"],
        "pi_b": [[p[3], p[2]], [p[5], p[4]], ["1", "0"]],
        "pi_c": [p[6], p[7], "1"],
        "protocol": "groth16",
        "curve": "bn128",
    }
