"""Claim submission protocol schemas and utilities."""

from .client import submit_claim, submit_claim_stream
from .constants import ERROR_CODES, PROTOCOL_ID
from .errors import ProtocolError, SchemaError, SizeLimitError
from .handler import ClaimService, error_code_for, handle_claim_request_bytes
from .messages import ClaimRequest, ClaimResponse
from .protocol import bound_port, handle_claim_stream, serve_claims

__all__ = [
    "ERROR_CODES",
    "PROTOCOL_ID",
    "ClaimRequest",
    "ClaimResponse",
    "ClaimService",
    "ProtocolError",
    "SchemaError",
    "SizeLimitError",
    "bound_port",
    "error_code_for",
    "handle_claim_request_bytes",
    "handle_claim_stream",
    "serve_claims",
    "submit_claim",
    "submit_claim_stream",
]
