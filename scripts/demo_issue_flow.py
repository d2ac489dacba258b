#!/usr/bin/env python3
"""Walk one certificate through submit → approve → verify → revoke → verify.

RUN:  python scripts/demo_issue_flow.py

Runs entirely in-process against the in-memory store and the simulated
ledger, so no server, database or ledger node is needed.
"""

from __future__ import annotations

import asyncio
import logging

from certanchor.core.logging import setup_logging
from certanchor.ledger.anchor import LedgerAnchorClient
from certanchor.ledger.client import LedgerServices
from certanchor.ledger.rpc import InMemoryLedgerRpc
from certanchor.ledger.signing import SigningIdentity, SigningKeyring
from certanchor.models.institution import Institution
from certanchor.models.principal import INSTITUTION_ADMIN, STUDENT, Principal
from certanchor.repos.store import InMemoryStore
from certanchor.services.lifecycle import CertificateLifecycle
from certanchor.services.verification import VerificationService


async def main() -> None:
    store = InMemoryStore()
    ledger = LedgerServices(
        anchor_client=LedgerAnchorClient(InMemoryLedgerRpc()),
        keyring=SigningKeyring(default=SigningIdentity.generate()),
    )
    lifecycle = CertificateLifecycle(store, ledger)
    verification = VerificationService(store, ledger)

    mit = Institution.new(name="MIT", verified=True)
    await store.institutions.add(mit)
    student = Principal(user_id="jane@example.com", roles=frozenset({STUDENT}))
    registrar = Principal(
        user_id="registrar@mit.edu",
        roles=frozenset({INSTITUTION_ADMIN}),
        institution_id=mit.id,
    )

    request = await lifecycle.submit(
        student, institution_id=mit.id, subject_name="Jane Doe", course_name="CS101"
    )
    issuance = await lifecycle.approve(request.id, registrar)
    cert = issuance.certificate
    print(f"issued      {cert.credential_id}")
    print(f"fingerprint {cert.fingerprint}")
    print(f"anchor      {issuance.anchor}")

    result = await verification.verify(cert.credential_id)
    print(f"verify      valid={result.valid} chain_confirmed={result.chain_confirmed}")

    await lifecycle.revoke(cert.credential_id, registrar)
    result = await verification.verify(cert.credential_id)
    print(f"revoked     valid={result.valid} reason={result.reason}")

    await ledger.aclose()


if __name__ == "__main__":
    setup_logging("info")
    logging.getLogger("certanchor").setLevel(logging.WARNING)
    asyncio.run(main())
