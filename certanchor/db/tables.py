"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in certanchor/models/.
Repos convert between rows and domain dataclasses.

Notes on column choices:
  - certificates.payload_json is TEXT, not JSONB.  JSONB normalizes
    numbers and whitespace; the fingerprint must be recomputable from
    exactly what was hashed.
  - certificates.ledger_asset_id is NUMERIC(20, 0).  Ledger asset ids
    are uint64 and BIGINT is signed, so the top half of the range would
    not fit.  Values are range-checked with to_uint64 on the way in and out.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from certanchor.db.engine import Base


class InstitutionRow(Base):
    __tablename__ = "institutions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    ledger_address: Mapped[str | None] = mapped_column(String(128), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CertificateRequestRow(Base):
    __tablename__ = "certificate_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    requester_id: Mapped[str] = mapped_column(String(320), nullable=False)
    institution_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("institutions.id"), nullable=False
    )
    subject_name: Mapped[str] = mapped_column(String(255), nullable=False)
    course_name: Mapped[str] = mapped_column(String(500), nullable=False)
    classification: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="PENDING"
    )  # PENDING|APPROVED|REJECTED
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_certificate_requests_institution_status", "institution_id", "status"),
        Index("ix_certificate_requests_requester", "requester_id"),
    )


class CertificateRow(Base):
    __tablename__ = "certificates"

    credential_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("certificate_requests.id"),
        unique=True,
        nullable=False,
    )
    subject_id: Mapped[str] = mapped_column(String(320), nullable=False)
    institution_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("institutions.id"), nullable=False
    )
    subject_name: Mapped[str] = mapped_column(String(255), nullable=False)
    course_name: Mapped[str] = mapped_column(String(500), nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    fingerprint_scheme: Mapped[str] = mapped_column(String(64), nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    issued_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="ACTIVE"
    )  # ACTIVE|REVOKED
    revoked_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    ledger_asset_id: Mapped[int | None] = mapped_column(Numeric(20, 0), nullable=True)
    ledger_tx_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        Index("ix_certificates_subject", "subject_id"),
        Index("ix_certificates_institution", "institution_id"),
        Index("ix_certificates_fingerprint", "fingerprint"),
    )
