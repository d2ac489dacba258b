"""Ledger signing identities (Algorand Ed25519 accounts).

An institution's ledger account is an Ed25519 key pair.  Its address is
the 58-character checksummed base32 form algosdk produces, and the
private key is kept in the SDK's format (base64 of seed || public key)
so `txn.sign()` can use it directly.

Private key material is loaded from a 32-byte hex seed (LEDGER_SIGNING_KEY)
and never logged or serialized back out.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from dataclasses import dataclass, field
from uuid import UUID

from algosdk import account, encoding
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)


@dataclass(frozen=True)
class SigningIdentity:
    private_key: str = field(repr=False)
    address: str

    @staticmethod
    def from_seed_hex(seed_hex: str) -> SigningIdentity:
        try:
            seed = bytes.fromhex(seed_hex)
        except ValueError:
            raise ValueError("signing seed must be hex") from None
        if len(seed) != 32:
            raise ValueError("signing seed must be 32 bytes")
        public_bytes = (
            Ed25519PrivateKey.from_private_bytes(seed)
            .public_key()
            .public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )
        )
        return SigningIdentity(
            private_key=base64.b64encode(seed + public_bytes).decode("ascii"),
            address=encoding.encode_address(public_bytes),
        )

    @staticmethod
    def generate() -> SigningIdentity:
        private_key, address = account.generate_account()
        return SigningIdentity(private_key=private_key, address=address)


def verify_signature(address: str, message: bytes, signature: bytes) -> bool:
    """Check an Ed25519 signature against the public key behind `address`."""
    if not encoding.is_valid_address(address):
        return False
    try:
        public_key = Ed25519PublicKey.from_public_bytes(encoding.decode_address(address))
        public_key.verify(signature, message)
    except (InvalidSignature, ValueError):
        return False
    return True


class SigningKeyring:
    """Resolves the signing identity used to anchor an institution's certificates.

    Per-institution identities win; otherwise the service-wide default
    (LEDGER_SIGNING_KEY) is used.  None means anchoring is not configured
    for that institution, which the anchor client treats as a failure.
    """

    def __init__(
        self,
        default: SigningIdentity | None = None,
        per_institution: Mapping[UUID, SigningIdentity] | None = None,
    ) -> None:
        self._default = default
        self._per_institution = dict(per_institution or {})

    def for_institution(self, institution_id: UUID) -> SigningIdentity | None:
        return self._per_institution.get(institution_id, self._default)

    def register(self, institution_id: UUID, identity: SigningIdentity) -> None:
        self._per_institution[institution_id] = identity

    @property
    def configured(self) -> bool:
        return self._default is not None or bool(self._per_institution)
