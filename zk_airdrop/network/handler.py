"""Pure request/response handler for claim submission."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from zk_airdrop.claims.exceptions import (
    InvalidNullifierError,
    InvalidProofError,
    InvalidRootError,
    NotFoundError,
    TransferError,
)
from zk_airdrop.claims.types import ClaimReceipt

from .constants import (
    ERR_ENGINE,
    ERR_INVALID_NULLIFIER,
    ERR_INVALID_PROOF,
    ERR_INVALID_ROOT,
    ERR_NOT_FOUND,
    ERR_TRANSFER_FAILED,
)
from .errors import ProtocolError
from .messages import ClaimResponse, decode_request, encode_response

logger = logging.getLogger(__name__)

# Most specific first; InvalidProofError etc. share the ClaimRejected base.
_ERROR_CODES = (
    (NotFoundError, ERR_NOT_FOUND),
    (InvalidRootError, ERR_INVALID_ROOT),
    (InvalidProofError, ERR_INVALID_PROOF),
    (InvalidNullifierError, ERR_INVALID_NULLIFIER),
    (TransferError, ERR_TRANSFER_FAILED),
)


class ClaimService(Protocol):
    def claim(
        self,
        airdrop_id: int,
        receiver: str,
        root: int,
        nullifier_hash: int,
        proof: Sequence[int],
    ) -> ClaimReceipt:
        ...


def error_code_for(exc: BaseException) -> str:
    for exc_type, code in _ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return ERR_ENGINE


def handle_claim_request_bytes(request_blob: bytes, engine: ClaimService) -> bytes:
    """
    Decode a claim request, run it through ``engine`` and encode the result.

    Always returns a response blob; failures become ``ok=False`` responses
    carrying a stable error code.
    """
    try:
        req = decode_request(request_blob)
    except ProtocolError as exc:
        return encode_response(ClaimResponse.failure(exc.code, f"bad request: {exc}"))

    try:
        receipt = engine.claim(
            req.airdrop_id, req.receiver, req.root, req.nullifier_hash, req.proof
        )
    except Exception as exc:
        code = error_code_for(exc)
        if code == ERR_ENGINE:
            logger.exception("Claim on airdrop %s failed unexpectedly", req.airdrop_id)
            message = "engine error"
        else:
            message = str(exc) or code
        return encode_response(ClaimResponse.failure(code, message, req.airdrop_id))

    try:
        return encode_response(
            ClaimResponse.success(receipt.airdrop_id, receipt.token, receipt.amount)
        )
    except ProtocolError as exc:
        # The claim has settled; only the report does not fit the schema.
        logger.warning("Settled claim on airdrop %s not encodable: %s", req.airdrop_id, exc)
        return encode_response(
            ClaimResponse.failure(ERR_ENGINE, "settled; receipt not encodable", req.airdrop_id)
        )
