"""Certificate lifecycle: requests in, certificates out.

STATE MACHINE
-------------
    Request       PENDING ──approve──► APPROVED
                     │
                     └────reject───► REJECTED

    Certificate   ACTIVE ──revoke──► REVOKED

Terminal states: APPROVED and REJECTED for requests, REVOKED for
certificates.  Every transition is a compare-and-set on the status
column, so a second actor racing on the same row gets ConflictError
instead of silently overwriting the first.

APPROVAL ORDERING
-----------------
    1. authorize, build canonical payload, fingerprint, mint credential id
    2. CAS request PENDING → APPROVED      ┐
    3. insert certificate (ACTIVE)         ├ one local transaction
    4. commit                              ┘
    5. anchor on the ledger                  best-effort, may take seconds
    6. set_anchor + commit                   only on success, write-once

Anchoring runs after the commit and holds no local lock.  A crash or
ledger failure at step 5 leaves a valid, ACTIVE, unanchored certificate;
retry_anchor() (or the certificate_anchoring worker task) can fill the
ledger fields in later.

Store errors (constraint violations, connectivity) propagate.  Ledger
errors never do: LedgerServices.anchor() always returns an outcome.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from certanchor.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StoreConflictError,
    ValidationError,
)
from certanchor.core.metrics import CERTIFICATE_TRANSITIONS, CERTIFICATES_ISSUED
from certanchor.ledger.anchor import AnchorFailure, AnchorOutcome, AnchorReceipt
from certanchor.ledger.client import LedgerServices
from certanchor.models.certificate import (
    DEFAULT_REJECTION_REASON,
    Certificate,
    CertificateRequest,
    CertificateStatus,
    RequestStatus,
)
from certanchor.models.principal import Principal
from certanchor.repos.store import Store
from certanchor.services.authorization import Action, authorize
from certanchor.services.credential_ids import new_credential_id
from certanchor.services.fingerprint import (
    FINGERPRINT_SCHEME,
    canonical_payload,
    fingerprint,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _iso(moment: datetime.datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _required(name: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{name} is required")
    return value.strip()


@dataclass(frozen=True, slots=True)
class Issuance:
    """Result of an approval or anchor retry.

    `certificate` is always issued and committed.  `anchor` says what
    happened on the ledger; an AnchorFailure leaves the certificate
    unanchored but does not undo it.
    """

    certificate: Certificate
    anchor: AnchorOutcome

    @property
    def anchored(self) -> bool:
        return isinstance(self.anchor, AnchorReceipt)


class CertificateLifecycle:
    def __init__(
        self,
        store: Store,
        ledger: LedgerServices,
        *,
        now: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._now = now

    # ------------------------------------------------------------------
    # requests
    # ------------------------------------------------------------------

    async def submit(
        self,
        actor: Principal,
        *,
        institution_id: UUID,
        subject_name: str,
        course_name: str,
        classification: str | None = None,
    ) -> CertificateRequest:
        try:
            authorize(actor, Action.SUBMIT, institution_id)
        except AuthorizationError:
            CERTIFICATE_TRANSITIONS.labels(transition="submit", outcome="denied").inc()
            raise

        subject_name = _required("subject_name", subject_name)
        course_name = _required("course_name", course_name)
        if classification is not None:
            classification = classification.strip() or None

        if await self._store.institutions.get(institution_id) is None:
            raise NotFoundError("institution not found")

        request = CertificateRequest.new(
            requester_id=actor.user_id,
            institution_id=institution_id,
            subject_name=subject_name,
            course_name=course_name,
            classification=classification,
            created_at=int(self._now().timestamp()),
        )
        await self._store.requests.add(request)
        await self._store.commit()

        CERTIFICATE_TRANSITIONS.labels(transition="submit", outcome="ok").inc()
        logger.info(
            "Certificate request submitted id=%s by user=%s",
            request.id,
            actor.user_id,
            extra={"cert_request_id": str(request.id), "institution_id": str(institution_id)},
        )
        return request

    async def _pending_request(
        self, request_id: UUID, actor: Principal, transition: str
    ) -> CertificateRequest:
        request = await self._store.requests.get(request_id)
        if request is None:
            raise NotFoundError("certificate request not found")
        try:
            authorize(actor, Action.REVIEW, request.institution_id)
        except AuthorizationError:
            CERTIFICATE_TRANSITIONS.labels(transition=transition, outcome="denied").inc()
            raise
        if request.status is not RequestStatus.PENDING:
            CERTIFICATE_TRANSITIONS.labels(transition=transition, outcome="conflict").inc()
            raise ConflictError(f"request is already {request.status}")
        return request

    async def approve(self, request_id: UUID, actor: Principal) -> Issuance:
        request = await self._pending_request(request_id, actor, "approve")
        institution = await self._store.institutions.get(request.institution_id)
        if institution is None:
            raise NotFoundError("institution not found")

        issued = self._now()
        metadata = {"classification": request.classification} if request.classification else None
        payload = canonical_payload(
            student_name=request.subject_name,
            institution_name=institution.name,
            course_name=request.course_name,
            issue_date=_iso(issued),
            metadata=metadata,
        )
        digest = fingerprint(payload)
        credential_id = new_credential_id()

        approved = await self._store.requests.compare_and_set_status(
            request_id, RequestStatus.PENDING, RequestStatus.APPROVED
        )
        if approved is None:
            CERTIFICATE_TRANSITIONS.labels(transition="approve", outcome="conflict").inc()
            raise ConflictError("request was reviewed concurrently")

        certificate = Certificate(
            credential_id=credential_id,
            request_id=request.id,
            subject_id=request.requester_id,
            institution_id=request.institution_id,
            subject_name=request.subject_name,
            course_name=request.course_name,
            fingerprint=digest,
            fingerprint_scheme=FINGERPRINT_SCHEME,
            issued_at=int(issued.timestamp()),
            payload=payload,
        )
        try:
            await self._store.certificates.add(certificate)
        except StoreConflictError:
            await self._store.rollback()
            CERTIFICATE_TRANSITIONS.labels(transition="approve", outcome="conflict").inc()
            raise
        await self._store.commit()

        CERTIFICATES_ISSUED.inc()
        CERTIFICATE_TRANSITIONS.labels(transition="approve", outcome="ok").inc()
        logger.info(
            "Request %s approved by user=%s, issued %s",
            request.id,
            actor.user_id,
            credential_id,
            extra={
                "cert_request_id": str(request.id),
                "credential_id": credential_id,
                "institution_id": str(request.institution_id),
            },
        )

        return await self._anchor(certificate)

    async def reject(
        self, request_id: UUID, actor: Principal, reason: str | None = None
    ) -> CertificateRequest:
        await self._pending_request(request_id, actor, "reject")
        reason = (reason or "").strip() or DEFAULT_REJECTION_REASON

        rejected = await self._store.requests.compare_and_set_status(
            request_id,
            RequestStatus.PENDING,
            RequestStatus.REJECTED,
            rejection_reason=reason,
        )
        if rejected is None:
            CERTIFICATE_TRANSITIONS.labels(transition="reject", outcome="conflict").inc()
            raise ConflictError("request was reviewed concurrently")
        await self._store.commit()

        CERTIFICATE_TRANSITIONS.labels(transition="reject", outcome="ok").inc()
        logger.info(
            "Request %s rejected by user=%s",
            request_id,
            actor.user_id,
            extra={"cert_request_id": str(request_id)},
        )
        return rejected

    # ------------------------------------------------------------------
    # certificates
    # ------------------------------------------------------------------

    async def _certificate(self, credential_id: str) -> Certificate:
        certificate = await self._store.certificates.get(credential_id)
        if certificate is None:
            raise NotFoundError("certificate not found")
        return certificate

    async def revoke(self, credential_id: str, actor: Principal) -> Certificate:
        """ACTIVE → REVOKED.  Local only; the ledger asset is left as is."""
        certificate = await self._certificate(credential_id)
        try:
            authorize(actor, Action.REVOKE, certificate.institution_id)
        except AuthorizationError:
            CERTIFICATE_TRANSITIONS.labels(transition="revoke", outcome="denied").inc()
            raise

        revoked = await self._store.certificates.compare_and_set_status(
            credential_id,
            CertificateStatus.ACTIVE,
            CertificateStatus.REVOKED,
            revoked_at=int(self._now().timestamp()),
        )
        if revoked is None:
            CERTIFICATE_TRANSITIONS.labels(transition="revoke", outcome="conflict").inc()
            raise ConflictError("certificate is already revoked")
        await self._store.commit()

        CERTIFICATE_TRANSITIONS.labels(transition="revoke", outcome="ok").inc()
        logger.info(
            "Certificate %s revoked by user=%s",
            credential_id,
            actor.user_id,
            extra={"credential_id": credential_id},
        )
        return revoked

    async def check_anchor_retry(self, credential_id: str, actor: Principal) -> Certificate:
        """Validate that `actor` may re-anchor the certificate and that it needs it."""
        certificate = await self._certificate(credential_id)
        authorize(actor, Action.REVIEW, certificate.institution_id)
        _ensure_anchorable(certificate)
        return certificate

    async def retry_anchor(self, credential_id: str, actor: Principal) -> Issuance:
        await self.check_anchor_retry(credential_id, actor)
        return await self.anchor_certificate(credential_id)

    async def anchor_certificate(self, credential_id: str) -> Issuance:
        """Anchor an unanchored ACTIVE certificate.  Used by the worker.

        No actor: callers authorize first (see check_anchor_retry).
        State is re-read because the task may run long after it was queued.
        """
        certificate = await self._certificate(credential_id)
        _ensure_anchorable(certificate)
        return await self._anchor(certificate)

    async def _anchor(self, certificate: Certificate) -> Issuance:
        outcome = await self._ledger.anchor(
            certificate.credential_id, certificate.fingerprint, certificate.institution_id
        )
        if isinstance(outcome, AnchorFailure):
            return Issuance(certificate=certificate, anchor=outcome)

        anchored = await self._store.certificates.set_anchor(
            certificate.credential_id, outcome.asset_id, outcome.tx_id
        )
        if anchored is None:
            # Someone else anchored it while we waited on the ledger.
            logger.warning(
                "Certificate %s already has ledger fields; asset=%d left unrecorded",
                certificate.credential_id,
                outcome.asset_id,
                extra={"credential_id": certificate.credential_id},
            )
            current = await self._certificate(certificate.credential_id)
            return Issuance(certificate=current, anchor=outcome)

        await self._store.commit()
        return Issuance(certificate=anchored, anchor=outcome)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    async def list_my_requests(self, actor: Principal) -> list[CertificateRequest]:
        return await self._store.requests.list_by_requester(actor.user_id)

    async def list_requests(
        self,
        institution_id: UUID,
        actor: Principal,
        status: RequestStatus | None = None,
    ) -> list[CertificateRequest]:
        authorize(actor, Action.VIEW_INSTITUTION, institution_id)
        return await self._store.requests.list_by_institution(institution_id, status)

    async def list_my_certificates(self, actor: Principal) -> list[Certificate]:
        return await self._store.certificates.list_by_subject(actor.user_id)

    async def list_issued(self, institution_id: UUID, actor: Principal) -> list[Certificate]:
        authorize(actor, Action.VIEW_INSTITUTION, institution_id)
        return await self._store.certificates.list_by_institution(institution_id)

    async def get_certificate_for_owner(
        self, credential_id: str, actor: Principal
    ) -> Certificate:
        certificate = await self._store.certificates.get(credential_id)
        # Same answer for "missing" and "not yours".
        if certificate is None or certificate.subject_id != actor.user_id:
            raise NotFoundError("certificate not found")
        return certificate


def _ensure_anchorable(certificate: Certificate) -> None:
    if not certificate.is_active:
        raise ConflictError("certificate is revoked")
    if certificate.is_anchored or certificate.ledger_tx_id is not None:
        raise ConflictError("certificate is already anchored")
