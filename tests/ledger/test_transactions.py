from __future__ import annotations

import asyncio
import base64

import pytest
from algosdk import account, encoding, transaction

from certanchor.ledger.errors import LedgerIntegerOverflow, LedgerResponseError
from certanchor.ledger.rpc import InMemoryLedgerRpc
from certanchor.ledger.signing import SigningIdentity, verify_signature
from certanchor.ledger.transactions import (
    UINT64_MAX,
    asset_name_for,
    build_asset_create,
    decode_note,
    decode_signed_transaction,
    encode_note,
    sign_transaction,
    signing_bytes,
    to_uint64,
)

CREDENTIAL_ID = "CERT-0LZ3K9XQ1-7QK2M4ZA"
FINGERPRINT = "ab" * 32

# RFC 8032 section 7.1, test 1
RFC8032_SEED = "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
RFC8032_PUBLIC = "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"


def _params() -> transaction.SuggestedParams:
    return asyncio.run(InMemoryLedgerRpc().suggested_params())


def _asset_create(identity: SigningIdentity, **kwargs) -> transaction.AssetCreateTxn:
    return build_asset_create(
        sender=identity.address,
        credential_id=CREDENTIAL_ID,
        fingerprint=FINGERPRINT,
        params=_params(),
        **kwargs,
    )


# ---- to_uint64 ----


def test_to_uint64_accepts_full_range() -> None:
    assert to_uint64(0) == 0
    assert to_uint64(UINT64_MAX) == UINT64_MAX
    assert to_uint64("18446744073709551615") == UINT64_MAX


def test_to_uint64_rejects_overflow_instead_of_wrapping() -> None:
    with pytest.raises(LedgerIntegerOverflow, match="does not fit in uint64"):
        to_uint64(UINT64_MAX + 1, field_name="asset_id")
    with pytest.raises(LedgerIntegerOverflow):
        to_uint64(-1)


def test_to_uint64_rejects_non_integers() -> None:
    with pytest.raises(LedgerIntegerOverflow):
        to_uint64("12.5")
    with pytest.raises(LedgerIntegerOverflow):
        to_uint64(True)


def test_overflow_is_also_an_overflow_error() -> None:
    with pytest.raises(OverflowError):
        to_uint64(2**70)


# ---- notes ----


def test_note_carries_exactly_credential_and_fingerprint() -> None:
    assert decode_note(encode_note(CREDENTIAL_ID, FINGERPRINT)) == {
        "credential_id": CREDENTIAL_ID,
        "fingerprint": FINGERPRINT,
    }


def test_decode_note_rejects_garbage() -> None:
    with pytest.raises(LedgerResponseError):
        decode_note(b"\xff\xfe")
    with pytest.raises(LedgerResponseError):
        decode_note(b"[1, 2]")


def test_asset_name_fits_ledger_limit() -> None:
    assert len(asset_name_for("CERT-" + "X" * 60).encode()) <= 32


# ---- identities ----


def test_addresses_are_checksummed_algorand_addresses() -> None:
    identity = SigningIdentity.generate()
    assert len(identity.address) == 58
    assert encoding.is_valid_address(identity.address)


def test_identity_from_seed_matches_ed25519_test_vector() -> None:
    identity = SigningIdentity.from_seed_hex(RFC8032_SEED)
    assert encoding.decode_address(identity.address) == bytes.fromhex(RFC8032_PUBLIC)
    assert account.address_from_private_key(identity.private_key) == identity.address


def test_identity_from_seed_rejects_bad_seeds() -> None:
    with pytest.raises(ValueError):
        SigningIdentity.from_seed_hex("11" * 16)
    with pytest.raises(ValueError):
        SigningIdentity.from_seed_hex("zz" * 32)


def test_identity_repr_hides_private_key() -> None:
    identity = SigningIdentity.from_seed_hex("11" * 32)
    assert identity.private_key not in repr(identity)


# ---- transactions ----


def test_asset_create_is_single_indivisible_unit() -> None:
    txn = _asset_create(
        SigningIdentity.generate(),
        metadata_url=f"https://certs.example/{CREDENTIAL_ID}/metadata",
    )
    assert txn.total == 1
    assert txn.decimals == 0
    assert txn.default_frozen is False
    assert txn.unit_name == "CERT"
    assert txn.asset_name == f"CERT-{CREDENTIAL_ID}"
    assert txn.url.endswith("/metadata")
    assert decode_note(txn.note)["fingerprint"] == FINGERPRINT


def test_asset_create_uses_suggested_params() -> None:
    params = _params()
    txn = _asset_create(SigningIdentity.generate())
    assert txn.genesis_hash == params.gh
    assert txn.first_valid_round == params.first
    assert txn.last_valid_round == params.last
    assert txn.fee >= 1000


def test_oversized_metadata_url_is_refused() -> None:
    with pytest.raises(ValueError, match="metadata url"):
        _asset_create(
            SigningIdentity.generate(), metadata_url="https://certs.example/" + "x" * 100
        )


def test_signed_bytes_are_msgpack_and_verify_against_sender() -> None:
    identity = SigningIdentity.generate()
    txn = _asset_create(identity)
    raw = sign_transaction(txn, identity)

    assert raw[0] & 0xF0 == 0x80  # msgpack fixmap, not JSON
    stxn = decode_signed_transaction(raw)
    assert stxn.get_txid() == txn.get_txid()
    assert len(stxn.get_txid()) == 52

    signature = base64.b64decode(stxn.signature)
    assert verify_signature(identity.address, signing_bytes(stxn.transaction), signature)
    assert not verify_signature(
        SigningIdentity.generate().address, signing_bytes(stxn.transaction), signature
    )


def test_seed_identity_signs_verifiable_transactions() -> None:
    identity = SigningIdentity.from_seed_hex(RFC8032_SEED)
    stxn = decode_signed_transaction(sign_transaction(_asset_create(identity), identity))
    signature = base64.b64decode(stxn.signature)
    assert verify_signature(identity.address, signing_bytes(stxn.transaction), signature)


def test_sign_rejects_foreign_sender() -> None:
    txn = _asset_create(SigningIdentity.generate())
    with pytest.raises(ValueError):
        sign_transaction(txn, SigningIdentity.generate())


def test_decode_rejects_non_transactions() -> None:
    with pytest.raises(LedgerResponseError):
        decode_signed_transaction(b'{"sig":"x","txn":{}}')
    with pytest.raises(LedgerResponseError):
        decode_signed_transaction(b"\x81\xa1a\x01")  # msgpack {"a": 1}


def test_verify_signature_rejects_malformed_address() -> None:
    assert not verify_signature("NOT-AN-ADDRESS", b"msg", b"\x00" * 64)
