"""
Proof verifier factory.

Backends are registered by import path and imported only when selected, so
the snarkjs backend costs nothing in mock deployments.

WARNING: backend choice decides what a "valid proof" means. The mock backend
is for testing only and must not be used in production.
"""

from __future__ import annotations

import importlib
from typing import Final

from .feature_flags import get_verifier_backend
from .verifier import ProofVerifier, VerifierOptions

VERIFIER_REGISTRY: Final[dict[str, str]] = {
    "mock": "zk_airdrop.claims.verifier.MockProofVerifier",
    "snarkjs": "zk_airdrop.claims.verifier.SnarkjsVerifier",
}


def _verifier_class(name: str) -> type:
    import_path = VERIFIER_REGISTRY[name]
    module_path, _, class_name = import_path.rpartition(".")
    try:
        verifier_cls = getattr(importlib.import_module(module_path), class_name)
    except (ModuleNotFoundError, AttributeError) as exc:
        raise ImportError(f"Verifier {name!r} is not importable from {import_path!r}") from exc

    if not callable(getattr(verifier_cls, "from_options", None)):
        raise TypeError(
            f"Verifier class {verifier_cls.__name__!r} does not provide from_options()"
        )
    return verifier_cls


def get_verifier(
    options: VerifierOptions,
    *,
    prefer: str | None = None,
    override: str | None = None,
) -> ProofVerifier:
    """
    Build the selected proof verifier.

    ``override`` wins outright; otherwise ``prefer`` and then the feature
    flag decide, via ``get_verifier_backend``.

    Args:
        options: Backend construction inputs.
        prefer: Optional backend name, normally from ``EngineConfig``.
        override: Optional backend name forced by the caller.

    Raises:
        ValueError: If a backend name is invalid or options are incomplete.
        ImportError: If the backend class cannot be imported.
        TypeError: If the backend does not implement ProofVerifier.
    """
    name = override or get_verifier_backend(prefer)
    if name not in VERIFIER_REGISTRY:
        raise ValueError(
            f"Invalid verifier name: {name!r}. "
            f"Valid options: {', '.join(sorted(VERIFIER_REGISTRY))}"
        )

    verifier = _verifier_class(name).from_options(options)
    if not isinstance(verifier, ProofVerifier):
        raise TypeError(f"Verifier instance {verifier!r} does not implement ProofVerifier")
    return verifier
