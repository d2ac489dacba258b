"""Public certificate verification.

Local status is authoritative and is checked first:

    lookup ──missing──► NOT_FOUND
      │
    status ──REVOKED──► REVOKED             (ledger not consulted)
      │
    recompute fingerprint ──differs──► INTEGRITY_MISMATCH
      │
    valid=True ──asset id?──► verify_anchor ──► chain_confirmed

chain_confirmed augments `valid` but never overrides it.  A missing
anchor, an unreachable ledger, or an on-chain match on the truncated tag
only all leave chain_confirmed=False; the `chain` field says which.

An invalid result never carries certificate details, so nobody can probe
for the subject of a revoked or unknown credential.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from certanchor.core.metrics import CERTIFICATE_VERIFICATIONS
from certanchor.ledger.anchor import AnchorVerification, ChainStatus
from certanchor.ledger.client import LedgerServices
from certanchor.models.certificate import Certificate
from certanchor.repos.store import Store
from certanchor.services.fingerprint import is_fingerprint, verify_fingerprint

logger = logging.getLogger(__name__)


class VerificationReason(StrEnum):
    NOT_FOUND = "NOT_FOUND"
    REVOKED = "REVOKED"
    INTEGRITY_MISMATCH = "INTEGRITY_MISMATCH"


@dataclass(frozen=True, slots=True)
class VerificationResult:
    valid: bool
    chain_confirmed: bool = False
    certificate: Certificate | None = None
    reason: VerificationReason | None = None
    chain: AnchorVerification | None = None

    @staticmethod
    def invalid(reason: VerificationReason) -> VerificationResult:
        return VerificationResult(valid=False, reason=reason)


class VerificationService:
    def __init__(self, store: Store, ledger: LedgerServices) -> None:
        self._store = store
        self._ledger = ledger

    async def _lookup(self, identifier: str) -> Certificate | None:
        identifier = identifier.strip()
        if is_fingerprint(identifier):
            return await self._store.certificates.get_by_fingerprint(identifier.lower())
        return await self._store.certificates.get(identifier)

    async def verify(self, identifier: str) -> VerificationResult:
        result = await self._verify(identifier)
        label = "valid" if result.valid else str(result.reason).lower()
        CERTIFICATE_VERIFICATIONS.labels(result=label).inc()
        return result

    async def _verify(self, identifier: str) -> VerificationResult:
        certificate = await self._lookup(identifier)
        if certificate is None:
            return VerificationResult.invalid(VerificationReason.NOT_FOUND)

        if not certificate.is_active:
            return VerificationResult.invalid(VerificationReason.REVOKED)

        if not verify_fingerprint(certificate.payload, certificate.fingerprint):
            logger.error(
                "Stored payload for %s no longer reproduces its fingerprint",
                certificate.credential_id,
                extra={"credential_id": certificate.credential_id},
            )
            return VerificationResult.invalid(VerificationReason.INTEGRITY_MISMATCH)

        chain = await self._ledger.verify_anchor(
            certificate.ledger_asset_id,
            certificate.fingerprint,
            expected_credential_id=certificate.credential_id,
        )
        if chain.status is ChainStatus.MISMATCH:
            logger.warning(
                "On-chain record for %s does not match: %s",
                certificate.credential_id,
                chain.detail,
                extra={
                    "credential_id": certificate.credential_id,
                    "ledger_asset_id": certificate.ledger_asset_id,
                },
            )
        return VerificationResult(
            valid=True,
            chain_confirmed=chain.status is ChainStatus.CONFIRMED,
            certificate=certificate,
            chain=chain,
        )
