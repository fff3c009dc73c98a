"""
Verifier backend feature flag.

The backend is taken from, in order: an explicit preference (normally
``EngineConfig.verifier_backend``), a process default set with
``set_verifier_backend``, the ``ZK_AIRDROP_VERIFIER`` environment variable,
and finally ``mock``.

WARNING: the mock backend accepts transparent proofs and provides no privacy.
"""

from __future__ import annotations

import os
from typing import Final, Optional

from .config import VERIFIER_BACKENDS

ENV_VAR: Final[str] = "ZK_AIRDROP_VERIFIER"
DEFAULT_BACKEND: Final[str] = "mock"

_process_default: Optional[str] = None


def _checked(value: object, source: str) -> Optional[str]:
    # Blank means unset.
    if value is None or value == "":
        return None
    if value not in VERIFIER_BACKENDS:
        raise ValueError(
            f"Invalid verifier backend {value!r} from {source}. "
            f"Valid options: {', '.join(VERIFIER_BACKENDS)}"
        )
    return str(value)


def get_verifier_backend(prefer: Optional[str] = None) -> str:
    """
    Resolve the verifier backend name.

    Raises:
        ValueError: If any consulted source names an unknown backend.
    """
    candidates = (
        (prefer, "caller"),
        (_process_default, "process default"),
        (os.getenv(ENV_VAR), ENV_VAR),
    )
    for value, source in candidates:
        backend = _checked(value, source)
        if backend is not None:
            return backend
    return DEFAULT_BACKEND


def set_verifier_backend(value: Optional[str]) -> None:
    """Set the process-wide default backend; ``None`` clears it."""
    global _process_default
    _process_default = _checked(value, "process default")
