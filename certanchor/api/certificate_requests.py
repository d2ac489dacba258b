"""Certificate request endpoints.

- POST /v1/certificate-requests                          student submits
- GET  /v1/certificate-requests/mine                     own requests
- GET  /v1/institutions/{institution_id}/certificate-requests?status=
- POST /v1/certificate-requests/{request_id}/approve     issues a certificate
- POST /v1/certificate-requests/{request_id}/reject

Approval returns 201 with the issued certificate and the anchoring
outcome.  A ledger failure is reported in `anchor`, never as an error
status: the certificate is issued either way.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from certanchor.api.certificates import CertificateOut
from certanchor.api.dependencies import get_lifecycle, http_error, require_user
from certanchor.core.errors import CertAnchorError
from certanchor.ledger.anchor import AnchorReceipt
from certanchor.models.certificate import CertificateRequest, RequestStatus
from certanchor.models.principal import Principal
from certanchor.services.lifecycle import CertificateLifecycle, Issuance

router = APIRouter(prefix="/v1", tags=["certificate-requests"])


# --- Pydantic schemas ---


class CertificateRequestIn(BaseModel):
    institution_id: UUID
    subject_name: str = Field(min_length=1, max_length=255)
    course_name: str = Field(min_length=1, max_length=500)
    classification: str | None = Field(default=None, max_length=64)


class RejectIn(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class CertificateRequestOut(BaseModel):
    id: str
    requester_id: str
    institution_id: str
    subject_name: str
    course_name: str
    classification: str | None
    status: str
    rejection_reason: str | None
    created_at: int


class AnchorOut(BaseModel):
    anchored: bool
    asset_id: int | None = None
    tx_id: str | None = None
    confirmed_round: int | None = None
    failure: str | None = None
    retryable: bool | None = None


class IssuanceOut(BaseModel):
    certificate: CertificateOut
    anchor: AnchorOut


def _request_out(req: CertificateRequest) -> CertificateRequestOut:
    return CertificateRequestOut(
        id=str(req.id),
        requester_id=req.requester_id,
        institution_id=str(req.institution_id),
        subject_name=req.subject_name,
        course_name=req.course_name,
        classification=req.classification,
        status=req.status.value,
        rejection_reason=req.rejection_reason,
        created_at=req.created_at,
    )


def _issuance_out(issuance: Issuance) -> IssuanceOut:
    outcome = issuance.anchor
    if isinstance(outcome, AnchorReceipt):
        anchor = AnchorOut(
            anchored=True,
            asset_id=outcome.asset_id,
            tx_id=outcome.tx_id,
            confirmed_round=outcome.confirmed_round,
        )
    else:
        anchor = AnchorOut(
            anchored=False, failure=outcome.reason.value, retryable=outcome.retryable
        )
    return IssuanceOut(
        certificate=CertificateOut.from_certificate(issuance.certificate), anchor=anchor
    )


# --- Endpoints ---


@router.post(
    "/certificate-requests",
    response_model=CertificateRequestOut,
    status_code=status.HTTP_201_CREATED,
)
async def submit_request(
    body: CertificateRequestIn,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
) -> CertificateRequestOut:
    try:
        req = await lifecycle.submit(
            principal,
            institution_id=body.institution_id,
            subject_name=body.subject_name,
            course_name=body.course_name,
            classification=body.classification,
        )
    except CertAnchorError as e:
        raise http_error(e) from None
    return _request_out(req)


@router.get("/certificate-requests/mine", response_model=list[CertificateRequestOut])
async def list_my_requests(
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
) -> list[CertificateRequestOut]:
    return [_request_out(r) for r in await lifecycle.list_my_requests(principal)]


@router.get(
    "/institutions/{institution_id}/certificate-requests",
    response_model=list[CertificateRequestOut],
)
async def list_institution_requests(
    institution_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
    request_status: Annotated[RequestStatus | None, Query(alias="status")] = None,
) -> list[CertificateRequestOut]:
    try:
        requests = await lifecycle.list_requests(institution_id, principal, request_status)
    except CertAnchorError as e:
        raise http_error(e) from None
    return [_request_out(r) for r in requests]


@router.post(
    "/certificate-requests/{request_id}/approve",
    response_model=IssuanceOut,
    status_code=status.HTTP_201_CREATED,
)
async def approve_request(
    request_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
) -> IssuanceOut:
    try:
        issuance = await lifecycle.approve(request_id, principal)
    except CertAnchorError as e:
        raise http_error(e) from None
    return _issuance_out(issuance)


@router.post(
    "/certificate-requests/{request_id}/reject", response_model=CertificateRequestOut
)
async def reject_request(
    request_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
    body: RejectIn | None = None,
) -> CertificateRequestOut:
    try:
        req = await lifecycle.reject(
            request_id, principal, body.reason if body is not None else None
        )
    except CertAnchorError as e:
        raise http_error(e) from None
    return _request_out(req)
