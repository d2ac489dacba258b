from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4


class RequestStatus(StrEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class CertificateStatus(StrEnum):
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"


DEFAULT_REJECTION_REASON = "Request rejected by institution"


@dataclass(frozen=True, slots=True)
class CertificateRequest:
    """A student's request for a certificate from an institution.

    Leaves PENDING exactly once (approve or reject) and is never deleted.
    """

    id: UUID
    requester_id: str
    institution_id: UUID
    subject_name: str
    course_name: str
    created_at: int
    classification: str | None = None  # free-text tag, e.g. "undergraduate"
    status: RequestStatus = RequestStatus.PENDING
    rejection_reason: str | None = None

    @staticmethod
    def new(
        *,
        requester_id: str,
        institution_id: UUID,
        subject_name: str,
        course_name: str,
        created_at: int,
        classification: str | None = None,
    ) -> CertificateRequest:
        return CertificateRequest(
            id=uuid4(),
            requester_id=requester_id,
            institution_id=institution_id,
            subject_name=subject_name,
            course_name=course_name,
            created_at=created_at,
            classification=classification,
        )


@dataclass(frozen=True, slots=True)
class Certificate:
    """Issued certificate.

    `payload` is the canonical structure that was fingerprinted, kept
    verbatim so the hash can be recomputed at verification time.  The
    ledger fields are write-once and may stay None forever.
    """

    credential_id: str
    request_id: UUID
    subject_id: str
    institution_id: UUID
    subject_name: str
    course_name: str
    fingerprint: str
    fingerprint_scheme: str
    issued_at: int
    payload: dict[str, Any] = field(default_factory=dict)
    status: CertificateStatus = CertificateStatus.ACTIVE
    revoked_at: int | None = None
    ledger_asset_id: int | None = None
    ledger_tx_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status is CertificateStatus.ACTIVE

    @property
    def is_anchored(self) -> bool:
        return self.ledger_asset_id is not None

    @property
    def institution_name(self) -> str:
        return str(self.payload.get("institutionName", ""))

    @property
    def issue_date(self) -> str:
        return str(self.payload.get("issueDate", ""))
