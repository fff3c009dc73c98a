"""
Custom exceptions for airdrop claims.

Every claim failure aborts the whole claim; these exceptions are how the
reason reaches the caller.
"""

from __future__ import annotations

from typing import Optional


class AirdropError(Exception):
    """Base exception for airdrop errors."""

    pass


class NotFoundError(AirdropError):
    """Unknown airdrop identifier."""

    pass


class InvalidAmountError(AirdropError, ValueError):
    """Airdrop payout must be a positive integer."""

    pass


class ClaimRejected(AirdropError):
    """
    A claim failed one of its checks.

    Attributes:
        airdrop_id: The airdrop being claimed, when known.
        stage: Name of the last stage the claim reached before rejection.
    """

    def __init__(
        self,
        message: str,
        *,
        airdrop_id: Optional[int] = None,
        stage: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.airdrop_id = airdrop_id
        self.stage = stage


class InvalidRootError(ClaimRejected):
    """Root is unknown for the group or its validity window has elapsed."""

    pass


class InvalidProofError(ClaimRejected):
    """Verifier rejected the proof, or the proof is malformed."""

    pass


class InvalidNullifierError(ClaimRejected):
    """Nullifier already consumed for this airdrop."""

    pass


class TransferError(AirdropError):
    """Token ledger refused the transfer."""

    pass


class InsufficientAllowanceError(TransferError):
    """Holder has not approved enough for the engine."""

    pass


class InsufficientBalanceError(TransferError):
    """Holder balance is below the payout."""

    pass


class GroupError(AirdropError):
    """Membership group operation failed."""

    pass


class ConfigurationError(AirdropError):
    """Configuration error."""

    pass


class VerifierUnavailableError(AirdropError):
    """External proof verifier could not be run."""

    pass
