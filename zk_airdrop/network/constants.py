"""Protocol constants for claim submission."""

from __future__ import annotations

PROTOCOL_ID = "/zk-airdrop/claim/1.0.0"
MSG_V = 1

FIELD_BYTES = 32
PROOF_ELEMENTS = 8

MAX_RECEIVER_CHARS = 256
MAX_TOKEN_CHARS = 256
MAX_ERR_CHARS = 256

ERR_NOT_FOUND = "not_found"
ERR_INVALID_ROOT = "invalid_root"
ERR_INVALID_PROOF = "invalid_proof"
ERR_INVALID_NULLIFIER = "invalid_nullifier"
ERR_TRANSFER_FAILED = "transfer_failed"
ERR_BAD_REQUEST = "bad_request"
ERR_ENGINE = "engine_error"

ERROR_CODES = frozenset(
    {
        ERR_NOT_FOUND,
        ERR_INVALID_ROOT,
        ERR_INVALID_PROOF,
        ERR_INVALID_NULLIFIER,
        ERR_TRANSFER_FAILED,
        ERR_BAD_REQUEST,
        ERR_ENGINE,
    }
)


def is_valid_error_code(code: str) -> bool:
    return code in ERROR_CODES
