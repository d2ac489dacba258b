"""Asset-creation transactions carrying a certificate fingerprint.

Each certificate is anchored as a single-unit, indivisible asset
(total=1, decimals=0), the ledger's representation of a non-fungible
token.  No manager address is set, so the asset's parameters can never
be reconfigured after creation.  The creation transaction's note holds
exactly:

    {"credential_id": "CERT-…", "fingerprint": "<64 hex chars>"}

Transactions are algosdk AssetCreateTxn objects built from the node's
suggested params (fee, validity window, genesis).  What crosses the
LedgerRpc boundary is the msgpack-encoded SignedTransaction, the same
bytes algod's POST /v2/transactions accepts.  The tx id is derived from
the transaction body, so resubmitting the same signed bytes yields the
same id.
"""

from __future__ import annotations

import base64
import json
from typing import Any

from algosdk import constants, encoding, transaction

from certanchor.ledger.errors import LedgerIntegerOverflow, LedgerResponseError
from certanchor.ledger.signing import SigningIdentity

UINT64_MAX = 2**64 - 1

ASSET_UNIT_NAME = "CERT"
_ASSET_NAME_MAX_BYTES = 32
_URL_MAX_BYTES = 96
_NOTE_MAX_BYTES = 1024


def to_uint64(value: Any, *, field_name: str = "value") -> int:
    """Convert to an unsigned 64-bit ledger integer, or raise.

    Python ints are unbounded while the ledger's are not; an out-of-range
    id must surface as an error, not wrap or truncate.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        try:
            value = int(str(value), 10)
        except ValueError:
            raise LedgerIntegerOverflow(f"{field_name} is not an integer") from None
    if value < 0 or value > UINT64_MAX:
        raise LedgerIntegerOverflow(f"{field_name} {value} does not fit in uint64")
    return value


def encode_note(credential_id: str, fingerprint: str) -> bytes:
    note = json.dumps(
        {"credential_id": credential_id, "fingerprint": fingerprint},
        sort_keys=True,
        separators=(",", ":"),
    ).encode("utf-8")
    if len(note) > _NOTE_MAX_BYTES:
        raise ValueError("note exceeds ledger note size limit")
    return note


def decode_note(note: bytes) -> dict[str, Any]:
    try:
        decoded = json.loads(note.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise LedgerResponseError("asset note is not JSON") from None
    if not isinstance(decoded, dict):
        raise LedgerResponseError("asset note is not an object")
    return decoded


def asset_name_for(credential_id: str) -> str:
    name = f"CERT-{credential_id}"
    return name.encode("utf-8")[:_ASSET_NAME_MAX_BYTES].decode("utf-8", "ignore")


def build_asset_create(
    *,
    sender: str,
    credential_id: str,
    fingerprint: str,
    params: transaction.SuggestedParams,
    metadata_url: str | None = None,
) -> transaction.AssetCreateTxn:
    if metadata_url and len(metadata_url.encode("utf-8")) > _URL_MAX_BYTES:
        raise ValueError(f"metadata url exceeds {_URL_MAX_BYTES} bytes")
    return transaction.AssetCreateTxn(
        sender=sender,
        sp=params,
        total=1,
        decimals=0,
        default_frozen=False,
        unit_name=ASSET_UNIT_NAME,
        asset_name=asset_name_for(credential_id),
        url=metadata_url or "",
        note=encode_note(credential_id, fingerprint),
    )


def signing_bytes(txn: transaction.Transaction) -> bytes:
    """The exact bytes an account signs: "TX" prefix + msgpack body."""
    return constants.txid_prefix + base64.b64decode(encoding.msgpack_encode(txn))


def sign_transaction(txn: transaction.Transaction, identity: SigningIdentity) -> bytes:
    if txn.sender != identity.address:
        raise ValueError("transaction sender does not match signing identity")
    signed = txn.sign(identity.private_key)
    return base64.b64decode(encoding.msgpack_encode(signed))


def decode_signed_transaction(raw: bytes) -> transaction.SignedTransaction:
    try:
        decoded = encoding.msgpack_decode(base64.b64encode(raw).decode("ascii"))
    except (ValueError, KeyError, TypeError, AttributeError):
        raise LedgerResponseError("malformed signed transaction") from None
    if not isinstance(decoded, transaction.SignedTransaction):
        raise LedgerResponseError("not a single-signature signed transaction")
    return decoded
