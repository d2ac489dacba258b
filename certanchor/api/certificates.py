"""Certificate endpoints.

Owner and institution views:
- GET  /v1/certificates/mine
- GET  /v1/institutions/{institution_id}/certificates
- GET  /v1/certificates/{credential_id}/download    owner only, JSON summary

Transitions:
- POST /v1/certificates/{credential_id}/revoke
- POST /v1/certificates/{credential_id}/anchor      202, queued retry

Public verification (rate-limited, no auth):
- GET  /v1/certificates/{identifier}/verify
- POST /v1/certificates/verify                      {"identifier": ...}

The identifier is a credential id or a 64-hex fingerprint.  Invalid
results carry only `valid`, `chain_confirmed` and `reason`.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from certanchor.api.dependencies import (
    get_lifecycle,
    get_verification,
    http_error,
    require_user,
)
from certanchor.api.ratelimit import require_rate_limit
from certanchor.core.errors import CertAnchorError
from certanchor.ledger.anchor import AnchorVerification
from certanchor.models.certificate import Certificate
from certanchor.models.principal import Principal
from certanchor.services.lifecycle import CertificateLifecycle
from certanchor.services.task_queue import ANCHOR_QUEUE, task_queue
from certanchor.services.verification import VerificationResult, VerificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["certificates"])


# --- Pydantic schemas ---


class CertificateOut(BaseModel):
    credential_id: str
    request_id: str
    institution_id: str
    institution_name: str
    subject_name: str
    course_name: str
    issue_date: str
    issued_at: int
    status: str
    revoked_at: int | None
    fingerprint: str
    fingerprint_scheme: str
    ledger_asset_id: int | None
    ledger_tx_id: str | None

    @staticmethod
    def from_certificate(cert: Certificate) -> CertificateOut:
        return CertificateOut(
            credential_id=cert.credential_id,
            request_id=str(cert.request_id),
            institution_id=str(cert.institution_id),
            institution_name=cert.institution_name,
            subject_name=cert.subject_name,
            course_name=cert.course_name,
            issue_date=cert.issue_date,
            issued_at=cert.issued_at,
            status=cert.status.value,
            revoked_at=cert.revoked_at,
            fingerprint=cert.fingerprint,
            fingerprint_scheme=cert.fingerprint_scheme,
            ledger_asset_id=cert.ledger_asset_id,
            ledger_tx_id=cert.ledger_tx_id,
        )


class CertificateDownloadOut(CertificateOut):
    payload: dict[str, Any]


class AnchorQueuedOut(BaseModel):
    task_id: str
    credential_id: str
    status: str


class VerifyIn(BaseModel):
    identifier: str = Field(min_length=1, max_length=128)


class VerifiedCertificateOut(BaseModel):
    credential_id: str
    subject: str
    institution: str
    course: str
    issue_date: str
    status: str
    fingerprint: str


class ChainOut(BaseModel):
    status: str
    full_digest: bool
    asset_id: int | None
    tx_id: str | None
    owner: str | None
    detail: str


class VerificationOut(BaseModel):
    valid: bool
    chain_confirmed: bool
    reason: str | None = None
    certificate: VerifiedCertificateOut | None = None
    chain: ChainOut | None = None


def _verification_out(result: VerificationResult) -> VerificationOut:
    if not result.valid or result.certificate is None:
        return VerificationOut(
            valid=False,
            chain_confirmed=False,
            reason=str(result.reason) if result.reason else None,
        )
    cert = result.certificate
    chain: AnchorVerification | None = result.chain
    return VerificationOut(
        valid=True,
        chain_confirmed=result.chain_confirmed,
        certificate=VerifiedCertificateOut(
            credential_id=cert.credential_id,
            subject=cert.subject_name,
            institution=cert.institution_name,
            course=cert.course_name,
            issue_date=cert.issue_date,
            status=cert.status.value,
            fingerprint=cert.fingerprint,
        ),
        chain=(
            ChainOut(
                status=chain.status.value,
                full_digest=chain.full_digest,
                asset_id=cert.ledger_asset_id,
                tx_id=cert.ledger_tx_id,
                owner=chain.owner,
                detail=chain.detail,
            )
            if chain is not None
            else None
        ),
    )


# --- Owner / institution views ---


@router.get("/certificates/mine", response_model=list[CertificateOut])
async def list_my_certificates(
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
) -> list[CertificateOut]:
    certificates = await lifecycle.list_my_certificates(principal)
    return [CertificateOut.from_certificate(c) for c in certificates]


@router.get(
    "/institutions/{institution_id}/certificates", response_model=list[CertificateOut]
)
async def list_issued_certificates(
    institution_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
) -> list[CertificateOut]:
    try:
        certificates = await lifecycle.list_issued(institution_id, principal)
    except CertAnchorError as e:
        raise http_error(e) from None
    return [CertificateOut.from_certificate(c) for c in certificates]


@router.get(
    "/certificates/{credential_id}/download", response_model=CertificateDownloadOut
)
async def download_certificate(
    credential_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
) -> CertificateDownloadOut:
    try:
        cert = await lifecycle.get_certificate_for_owner(credential_id, principal)
    except CertAnchorError as e:
        raise http_error(e) from None
    return CertificateDownloadOut(
        **CertificateOut.from_certificate(cert).model_dump(),
        payload=cert.payload,
    )


# --- Transitions ---


@router.post("/certificates/{credential_id}/revoke", response_model=CertificateOut)
async def revoke_certificate(
    credential_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
) -> CertificateOut:
    try:
        cert = await lifecycle.revoke(credential_id, principal)
    except CertAnchorError as e:
        raise http_error(e) from None
    return CertificateOut.from_certificate(cert)


@router.post(
    "/certificates/{credential_id}/anchor",
    response_model=AnchorQueuedOut,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_anchor_retry(
    credential_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
) -> AnchorQueuedOut:
    """Queue another anchoring attempt for an unanchored ACTIVE certificate."""
    try:
        await lifecycle.check_anchor_retry(credential_id, principal)
    except CertAnchorError as e:
        raise http_error(e) from None

    task = await task_queue.enqueue(
        ANCHOR_QUEUE,
        {"credential_id": credential_id, "requested_by": principal.user_id},
    )
    logger.info(
        "Queued anchor retry task=%s for %s",
        task.id,
        credential_id,
        extra={"credential_id": credential_id},
    )
    return AnchorQueuedOut(task_id=task.id, credential_id=credential_id, status="queued")


# --- Public verification ---


@router.get(
    "/certificates/{identifier}/verify",
    response_model=VerificationOut,
    response_model_exclude_none=True,
    dependencies=[Depends(require_rate_limit())],
)
async def verify_certificate(
    identifier: str,
    verification: Annotated[VerificationService, Depends(get_verification)],
) -> VerificationOut:
    return _verification_out(await verification.verify(identifier))


@router.post(
    "/certificates/verify",
    response_model=VerificationOut,
    response_model_exclude_none=True,
    dependencies=[Depends(require_rate_limit())],
)
async def verify_certificate_body(
    body: VerifyIn,
    verification: Annotated[VerificationService, Depends(get_verification)],
) -> VerificationOut:
    return _verification_out(await verification.verify(body.identifier))
