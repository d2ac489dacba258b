"""create institutions, certificate_requests, certificates

Revision ID: 3c1f0a9d7e21
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c1f0a9d7e21"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "institutions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("ledger_address", sa.String(length=128), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "certificate_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("requester_id", sa.String(length=320), nullable=False),
        sa.Column(
            "institution_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("institutions.id"),
            nullable=False,
        ),
        sa.Column("subject_name", sa.String(length=255), nullable=False),
        sa.Column("course_name", sa.String(length=500), nullable=False),
        sa.Column("classification", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_certificate_requests_status",
        ),
    )
    op.create_index(
        "ix_certificate_requests_institution_status",
        "certificate_requests",
        ["institution_id", "status"],
    )
    op.create_index(
        "ix_certificate_requests_requester", "certificate_requests", ["requester_id"]
    )

    op.create_table(
        "certificates",
        sa.Column("credential_id", sa.String(length=64), primary_key=True),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("certificate_requests.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("subject_id", sa.String(length=320), nullable=False),
        sa.Column(
            "institution_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("institutions.id"),
            nullable=False,
        ),
        sa.Column("subject_name", sa.String(length=255), nullable=False),
        sa.Column("course_name", sa.String(length=500), nullable=False),
        sa.Column("fingerprint", sa.String(length=64), nullable=False),
        sa.Column("fingerprint_scheme", sa.String(length=64), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("issued_at", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="ACTIVE"),
        sa.Column("revoked_at", sa.BigInteger(), nullable=True),
        sa.Column("ledger_asset_id", sa.Numeric(20, 0), nullable=True),
        sa.Column("ledger_tx_id", sa.String(length=128), nullable=True),
        sa.CheckConstraint(
            "status IN ('ACTIVE', 'REVOKED')", name="ck_certificates_status"
        ),
        sa.CheckConstraint(
            "ledger_asset_id IS NULL OR "
            "(ledger_asset_id >= 0 AND ledger_asset_id <= 18446744073709551615)",
            name="ck_certificates_ledger_asset_id_uint64",
        ),
        sa.CheckConstraint(
            "(ledger_asset_id IS NULL) = (ledger_tx_id IS NULL)",
            name="ck_certificates_ledger_fields_together",
        ),
    )
    op.create_index("ix_certificates_subject", "certificates", ["subject_id"])
    op.create_index("ix_certificates_institution", "certificates", ["institution_id"])
    op.create_index("ix_certificates_fingerprint", "certificates", ["fingerprint"])


def downgrade() -> None:
    op.drop_index("ix_certificates_fingerprint", table_name="certificates")
    op.drop_index("ix_certificates_institution", table_name="certificates")
    op.drop_index("ix_certificates_subject", table_name="certificates")
    op.drop_table("certificates")
    op.drop_index("ix_certificate_requests_requester", table_name="certificate_requests")
    op.drop_index(
        "ix_certificate_requests_institution_status", table_name="certificate_requests"
    )
    op.drop_table("certificate_requests")
    op.drop_table("institutions")
