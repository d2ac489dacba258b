"""Verification service tests.

Local state is authoritative: revocation and integrity failures are
reported before (and without) the ledger being consulted.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest
from prometheus_client import REGISTRY

from certanchor.ledger.anchor import ChainStatus
from certanchor.ledger.client import LedgerServices
from certanchor.ledger.errors import LedgerTimeoutError
from certanchor.ledger.rpc import InMemoryLedgerRpc
from certanchor.models.certificate import Certificate
from certanchor.models.institution import Institution
from certanchor.repos.store import InMemoryStore
from certanchor.services.lifecycle import CertificateLifecycle
from certanchor.services.verification import VerificationReason, VerificationService
from tests.conftest import institution_admin, student


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


def _issue(store: InMemoryStore, ledger: LedgerServices) -> Certificate:
    institution = Institution.new(name="MIT")
    asyncio.run(store.institutions.add(institution))
    lifecycle = CertificateLifecycle(store, ledger)
    request = asyncio.run(
        lifecycle.submit(
            student("jane"),
            institution_id=institution.id,
            subject_name="Jane Doe",
            course_name="CS101",
        )
    )
    return asyncio.run(
        lifecycle.approve(request.id, institution_admin(institution.id))
    ).certificate


def _verifications(result: str) -> float:
    value = REGISTRY.get_sample_value(
        "certificate_verifications_total", labels={"result": result}
    )
    return value if value is not None else 0.0


def test_unknown_identifier_is_not_found(store: InMemoryStore, ledger: LedgerServices) -> None:
    result = asyncio.run(VerificationService(store, ledger).verify("CERT-000000000-AAAAAAAA"))
    assert not result.valid
    assert not result.chain_confirmed
    assert result.reason is VerificationReason.NOT_FOUND
    assert result.certificate is None


def test_verify_by_credential_id_and_fingerprint(
    store: InMemoryStore, ledger: LedgerServices
) -> None:
    certificate = _issue(store, ledger)
    service = VerificationService(store, ledger)

    by_id = asyncio.run(service.verify(certificate.credential_id))
    by_fingerprint = asyncio.run(service.verify(certificate.fingerprint.upper()))

    for result in (by_id, by_fingerprint):
        assert result.valid
        assert result.chain_confirmed
        assert result.chain is not None
        assert result.chain.status is ChainStatus.CONFIRMED
        assert result.certificate is not None
        assert result.certificate.credential_id == certificate.credential_id


def test_tampered_payload_is_integrity_mismatch(
    store: InMemoryStore, ledger: LedgerServices
) -> None:
    certificate = _issue(store, ledger)
    tampered = replace(
        certificate, payload=dict(certificate.payload, courseName="CS999")
    )
    store.certificates._by_credential_id[certificate.credential_id] = tampered

    result = asyncio.run(VerificationService(store, ledger).verify(certificate.credential_id))
    assert not result.valid
    assert result.reason is VerificationReason.INTEGRITY_MISMATCH
    assert result.certificate is None


def test_unanchored_certificate_is_valid_but_unconfirmed(store: InMemoryStore) -> None:
    certificate = _issue(store, LedgerServices())
    result = asyncio.run(
        VerificationService(store, LedgerServices()).verify(certificate.credential_id)
    )
    assert result.valid
    assert not result.chain_confirmed
    assert result.chain is not None
    assert result.chain.status is ChainStatus.UNANCHORED


def test_unreachable_ledger_never_invalidates(
    store: InMemoryStore, ledger: LedgerServices, ledger_rpc: InMemoryLedgerRpc
) -> None:
    certificate = _issue(store, ledger)
    ledger_rpc.lookup_error = LedgerTimeoutError("indexer down")

    result = asyncio.run(VerificationService(store, ledger).verify(certificate.credential_id))
    assert result.valid
    assert not result.chain_confirmed
    assert result.chain is not None
    assert result.chain.status is ChainStatus.INCONCLUSIVE


def test_destroyed_asset_is_valid_but_unconfirmed(
    store: InMemoryStore, ledger: LedgerServices, ledger_rpc: InMemoryLedgerRpc
) -> None:
    certificate = _issue(store, ledger)
    assert certificate.ledger_asset_id is not None
    ledger_rpc.destroy_asset(certificate.ledger_asset_id)

    result = asyncio.run(VerificationService(store, ledger).verify(certificate.credential_id))
    assert result.valid
    assert not result.chain_confirmed
    assert result.chain is not None
    assert result.chain.status is ChainStatus.NOT_FOUND


def test_verification_outcomes_are_counted(
    store: InMemoryStore, ledger: LedgerServices
) -> None:
    certificate = _issue(store, ledger)
    service = VerificationService(store, ledger)
    valid_before = _verifications("valid")
    missing_before = _verifications("not_found")

    asyncio.run(service.verify(certificate.credential_id))
    asyncio.run(service.verify("CERT-000000000-AAAAAAAA"))

    assert _verifications("valid") - valid_before == 1
    assert _verifications("not_found") - missing_before == 1
