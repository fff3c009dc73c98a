"""CBOR message schemas for claim submission."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

import cbor2

from .constants import (
    FIELD_BYTES,
    MAX_ERR_CHARS,
    MAX_RECEIVER_CHARS,
    MAX_TOKEN_CHARS,
    MSG_V,
    PROOF_ELEMENTS,
    PROTOCOL_ID,
    is_valid_error_code,
)
from .errors import SchemaError, SizeLimitError

REQUEST_MAX_BYTES = 4096
RESPONSE_MAX_BYTES = 2048

_WORD_LIMIT = 1 << (8 * FIELD_BYTES)


def _require_bytes(value: Any, field: str) -> bytes:
    if not isinstance(value, (bytes, bytearray)):
        raise SchemaError(f"{field} must be bytes")
    return bytes(value)


def _require_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise SchemaError(f"{field} must be an int")
    return value


def _require_word(value: Any, field: str) -> int:
    value = _require_int(value, field)
    if not 0 <= value < _WORD_LIMIT:
        raise SchemaError(f"{field} must fit in {FIELD_BYTES} bytes")
    return value


def _word_to_bytes(value: int) -> bytes:
    return value.to_bytes(FIELD_BYTES, "big")


def _bytes_to_word(value: Any, field: str) -> int:
    raw = _require_bytes(value, field)
    if len(raw) != FIELD_BYTES:
        raise SchemaError(f"{field} must be {FIELD_BYTES} bytes")
    return int.from_bytes(raw, "big")


def _loads(blob: Any, label: str, max_bytes: int) -> dict:
    if not isinstance(blob, (bytes, bytearray)):
        raise SchemaError(f"{label} blob must be bytes")
    blob_bytes = bytes(blob)
    if len(blob_bytes) > max_bytes:
        raise SizeLimitError(label, len(blob_bytes), max_bytes)
    try:
        payload = cbor2.loads(blob_bytes)
    except cbor2.CBORDecodeError as exc:
        raise SchemaError(f"{label} is not valid CBOR") from exc
    if not isinstance(payload, dict):
        raise SchemaError(f"{label} payload must be a dict")
    return payload


@dataclass(frozen=True)
class ClaimRequest:
    """
    One claim submission.

    Field elements travel as 32-byte big-endian strings; range checks against
    the SNARK field are left to the engine so they surface as claim errors.
    """

    msg_v: int
    airdrop_id: int
    receiver: str
    root: int
    nullifier_hash: int
    proof: Tuple[int, ...]

    @classmethod
    def from_bundle(cls, airdrop_id: int, receiver: str, bundle: Any) -> "ClaimRequest":
        return cls(
            msg_v=MSG_V,
            airdrop_id=airdrop_id,
            receiver=receiver,
            root=bundle.root,
            nullifier_hash=bundle.nullifier_hash,
            proof=tuple(bundle.proof),
        )

    def validate(self) -> None:
        if self.msg_v != MSG_V:
            raise SchemaError("unsupported msg_v")
        airdrop_id = _require_int(self.airdrop_id, "airdrop_id")
        if airdrop_id < 1:
            raise SchemaError("airdrop_id must be >= 1")
        if not isinstance(self.receiver, str) or not self.receiver:
            raise SchemaError("receiver must be a non-empty string")
        if len(self.receiver) > MAX_RECEIVER_CHARS:
            raise SchemaError("receiver too long")
        _require_word(self.root, "root")
        _require_word(self.nullifier_hash, "nullifier_hash")
        if len(self.proof) != PROOF_ELEMENTS:
            raise SchemaError(f"proof must have {PROOF_ELEMENTS} elements")
        for idx, element in enumerate(self.proof):
            _require_word(element, f"proof[{idx}]")


@dataclass(frozen=True)
class ClaimResponse:
    msg_v: int
    ok: bool
    airdrop_id: int
    token: str
    amount: int
    code: Optional[str]
    err: Optional[str]

    @classmethod
    def success(cls, airdrop_id: int, token: str, amount: int) -> "ClaimResponse":
        return cls(
            msg_v=MSG_V,
            ok=True,
            airdrop_id=airdrop_id,
            token=token,
            amount=amount,
            code=None,
            err=None,
        )

    @classmethod
    def failure(cls, code: str, err: str, airdrop_id: int = 0) -> "ClaimResponse":
        return cls(
            msg_v=MSG_V,
            ok=False,
            airdrop_id=airdrop_id,
            token="",
            amount=0,
            code=code,
            err=err[:MAX_ERR_CHARS] or code,
        )

    def validate(self) -> None:
        if self.msg_v != MSG_V:
            raise SchemaError("unsupported msg_v")
        if _require_int(self.airdrop_id, "airdrop_id") < 0:
            raise SchemaError("airdrop_id must be >= 0")
        if not isinstance(self.token, str):
            raise SchemaError("token must be a string")
        if len(self.token) > MAX_TOKEN_CHARS:
            raise SchemaError("token too long")
        amount = _require_int(self.amount, "amount")

        if self.ok:
            if amount <= 0:
                raise SchemaError("amount must be positive when ok=True")
            if not self.token:
                raise SchemaError("token required when ok=True")
            if self.code is not None or self.err not in (None, ""):
                raise SchemaError("code/err must be empty when ok=True")
        else:
            if amount != 0 or self.token:
                raise SchemaError("token/amount must be empty when ok=False")
            if not is_valid_error_code(self.code):
                raise SchemaError("unknown error code")
            if not isinstance(self.err, str) or not self.err:
                raise SchemaError("err required when ok=False")
            if len(self.err) > MAX_ERR_CHARS:
                raise SchemaError("err too long")


def encode_request(req: ClaimRequest) -> bytes:
    req.validate()
    payload = {
        "proto": PROTOCOL_ID,
        "msg_v": req.msg_v,
        "airdrop_id": req.airdrop_id,
        "receiver": req.receiver,
        "root": _word_to_bytes(req.root),
        "nullifier_hash": _word_to_bytes(req.nullifier_hash),
        "proof": [_word_to_bytes(p) for p in req.proof],
    }
    blob = cbor2.dumps(payload)
    if len(blob) > REQUEST_MAX_BYTES:
        raise SizeLimitError("request", len(blob), REQUEST_MAX_BYTES)
    return blob


def decode_request(blob: bytes) -> ClaimRequest:
    payload = _loads(blob, "request", REQUEST_MAX_BYTES)
    if payload.get("proto") != PROTOCOL_ID:
        raise SchemaError("unsupported protocol")
    proof = payload.get("proof")
    if not isinstance(proof, list):
        raise SchemaError("proof must be a list")
    req = ClaimRequest(
        msg_v=_require_int(payload.get("msg_v", -1), "msg_v"),
        airdrop_id=_require_int(payload.get("airdrop_id", 0), "airdrop_id"),
        receiver=payload.get("receiver", ""),
        root=_bytes_to_word(payload.get("root", b""), "root"),
        nullifier_hash=_bytes_to_word(payload.get("nullifier_hash", b""), "nullifier_hash"),
        proof=tuple(_bytes_to_word(p, f"proof[{i}]") for i, p in enumerate(proof)),
    )
    req.validate()
    return req


def encode_response(resp: ClaimResponse) -> bytes:
    resp.validate()
    payload = {
        "msg_v": resp.msg_v,
        "ok": resp.ok,
        "airdrop_id": resp.airdrop_id,
        "token": resp.token,
        "amount": resp.amount,
        "code": resp.code,
        "err": resp.err,
    }
    blob = cbor2.dumps(payload)
    if len(blob) > RESPONSE_MAX_BYTES:
        raise SizeLimitError("response", len(blob), RESPONSE_MAX_BYTES)
    return blob


def decode_response(blob: bytes) -> ClaimResponse:
    payload = _loads(blob, "response", RESPONSE_MAX_BYTES)

    for field in ("code", "err"):
        value = payload.get(field)
        if value is not None and not isinstance(value, str):
            raise SchemaError(f"{field} must be a string")

    resp = ClaimResponse(
        msg_v=_require_int(payload.get("msg_v", -1), "msg_v"),
        ok=bool(payload.get("ok", False)),
        airdrop_id=_require_int(payload.get("airdrop_id", 0), "airdrop_id"),
        token=payload.get("token", ""),
        amount=_require_int(payload.get("amount", 0), "amount"),
        code=payload.get("code"),
        err=payload.get("err"),
    )
    resp.validate()
    return resp
