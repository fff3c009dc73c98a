"""
Configuration for the claim-authorization engine.

Module constants describe the proof encoding and the default root-history
policy. ``EngineConfig`` carries the tunable values; ``load_config`` resolves
them from defaults, an optional YAML file, environment variables and explicit
overrides (in increasing order of precedence).
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Final, Mapping, Optional

import yaml

from .exceptions import ConfigurationError

# ============================================================================
# PROOF ENCODING
# ============================================================================

# BN254 scalar field order; roots, nullifier hashes and proof elements live here.
SNARK_SCALAR_FIELD: Final[int] = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)

# Groth16 proof packed as (a.x, a.y, b.x1, b.x0, b.y1, b.y0, c.x, c.y).
PROOF_ELEMENTS: Final[int] = 8

EXTERNAL_NULLIFIER_DOMAIN: Final[bytes] = b"ZK_AIRDROP_V1_EXTERNAL_NULLIFIER"
IDENTITY_DOMAIN: Final[bytes] = b"ZK_AIRDROP_V1_IDENTITY"
NULLIFIER_DOMAIN: Final[bytes] = b"ZK_AIRDROP_V1_NULLIFIER"

# ============================================================================
# ROOT HISTORY POLICY
# ============================================================================

# One hour: a proof built against the previous root survives one more admission.
DEFAULT_ROOT_VALIDITY_WINDOW: Final[float] = 3600.0
DEFAULT_ROOT_HISTORY_CAPACITY: Final[int] = 30

# ============================================================================
# ENGINE
# ============================================================================

DEFAULT_ENGINE_ADDRESS: Final[str] = "zk-airdrop-engine"
VERIFIER_BACKENDS: Final[tuple[str, ...]] = ("mock", "snarkjs")
DEFAULT_SNARKJS_BIN: Final[str] = "snarkjs"
DEFAULT_VERIFIER_TIMEOUT: Final[float] = 30.0

SNAPSHOT_VERSION: Final[int] = 1

_ENV_ROOT_WINDOW: Final[str] = "ZK_AIRDROP_ROOT_WINDOW"
_ENV_ROOT_CAPACITY: Final[str] = "ZK_AIRDROP_ROOT_CAPACITY"
_ENV_ENGINE_ADDRESS: Final[str] = "ZK_AIRDROP_ENGINE_ADDRESS"
_ENV_VERIFICATION_KEY: Final[str] = "ZK_AIRDROP_VERIFICATION_KEY"


@dataclass(frozen=True)
class EngineConfig:
    """
    Tunable engine parameters.

    Attributes:
        root_validity_window: Seconds a superseded root stays acceptable.
        root_history_capacity: Maximum number of superseded roots kept per group.
        engine_address: Spender identity holders must approve on the token ledger.
        verifier_backend: Proof verifier backend ("mock" or "snarkjs"); None defers
            to the ZK_AIRDROP_VERIFIER feature flag.
        snarkjs_bin: Executable used by the snarkjs backend.
        verification_key: Path to the Groth16 verification key (snarkjs backend).
        verifier_timeout: Seconds before an external verification is abandoned.
    """

    root_validity_window: float = DEFAULT_ROOT_VALIDITY_WINDOW
    root_history_capacity: int = DEFAULT_ROOT_HISTORY_CAPACITY
    engine_address: str = DEFAULT_ENGINE_ADDRESS
    verifier_backend: Optional[str] = None
    snarkjs_bin: str = DEFAULT_SNARKJS_BIN
    verification_key: Optional[str] = None
    verifier_timeout: float = DEFAULT_VERIFIER_TIMEOUT

    def validate(self) -> "EngineConfig":
        """
        Check value ranges.

        Returns:
            The same config, for chaining.

        Raises:
            ConfigurationError: If any value is out of range.
        """
        if isinstance(self.root_validity_window, bool) or not isinstance(
            self.root_validity_window, (int, float)
        ):
            raise ConfigurationError("root_validity_window must be a number")
        if self.root_validity_window <= 0:
            raise ConfigurationError("root_validity_window must be positive")
        if isinstance(self.root_history_capacity, bool) or not isinstance(
            self.root_history_capacity, int
        ):
            raise ConfigurationError("root_history_capacity must be an int")
        if self.root_history_capacity < 1:
            raise ConfigurationError("root_history_capacity must be >= 1")
        if not isinstance(self.engine_address, str) or not self.engine_address:
            raise ConfigurationError("engine_address must be a non-empty string")
        if self.verifier_backend is not None and self.verifier_backend not in VERIFIER_BACKENDS:
            raise ConfigurationError(
                f"verifier_backend must be one of {', '.join(VERIFIER_BACKENDS)}"
            )
        if self.verifier_timeout <= 0:
            raise ConfigurationError("verifier_timeout must be positive")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown config keys: {', '.join(sorted(unknown))}"
            )
        return cls(**dict(data)).validate()


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}

    window = os.getenv(_ENV_ROOT_WINDOW)
    if window:
        try:
            overrides["root_validity_window"] = float(window)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid {_ENV_ROOT_WINDOW}: {window!r}"
            ) from exc

    capacity = os.getenv(_ENV_ROOT_CAPACITY)
    if capacity:
        try:
            overrides["root_history_capacity"] = int(capacity)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid {_ENV_ROOT_CAPACITY}: {capacity!r}"
            ) from exc

    address = os.getenv(_ENV_ENGINE_ADDRESS)
    if address:
        overrides["engine_address"] = address

    vk = os.getenv(_ENV_VERIFICATION_KEY)
    if vk:
        overrides["verification_key"] = vk

    return overrides


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    with open(path, encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping")
    # Allow the engine settings to be nested under a top-level key.
    section = data.get("zk_airdrop", data)
    if not isinstance(section, dict):
        raise ConfigurationError(f"{path}: 'zk_airdrop' must be a mapping")
    return dict(section)


def load_config(
    path: str | Path | None = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> EngineConfig:
    """
    Resolve engine configuration.

    Precedence (lowest to highest): defaults, YAML file, environment,
    explicit overrides. ``None`` override values are ignored.

    Raises:
        ConfigurationError: If the file is missing/invalid or a value is out of range.
    """
    merged: Dict[str, Any] = EngineConfig().to_dict()
    if path is not None:
        merged.update(_read_yaml(Path(path)))
    merged.update(_env_overrides())
    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})
    return EngineConfig.from_dict(merged)


def validate_config() -> bool:
    """
    Validate module-level constants.

    Raises:
        AssertionError: If a constant is inconsistent.
    """
    assert SNARK_SCALAR_FIELD.bit_length() == 254, "Unexpected scalar field size"
    assert PROOF_ELEMENTS == 8, "Groth16 proofs pack into 8 field elements"
    assert DEFAULT_ROOT_VALIDITY_WINDOW > 0, "Validity window must be positive"
    assert DEFAULT_ROOT_HISTORY_CAPACITY >= 1, "History must keep a root"
    return True


validate_config()
