"""initial invoice intake schema

Revision ID: 3c1e9a7b5d20
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c1e9a7b5d20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    op.create_table(
        "locations_location",
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("auto_approve_enabled", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_locations_location_organisation_id"), "locations_location", ["organisation_id"]
    )
    op.create_index(op.f("ix_locations_location_updated_at"), "locations_location", ["updated_at"])

    op.create_table(
        "accounting_invoice_record",
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("external_ref", sa.String(length=200), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        sa.Column("supplier_name", sa.String(length=300), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "organisation_id", "external_ref", name="uq_accounting_org_external_ref"
        ),
    )
    op.create_index(
        op.f("ix_accounting_invoice_record_organisation_id"),
        "accounting_invoice_record",
        ["organisation_id"],
    )
    op.create_index(
        op.f("ix_accounting_invoice_record_updated_at"), "accounting_invoice_record", ["updated_at"]
    )

    op.create_table(
        "suppliers_supplier",
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=False),
        sa.Column("normalized_name", sa.String(length=300), nullable=False),
        sa.Column(
            "status",
            _enum("supplierstatus", "ACTIVE", "PENDING_REVIEW", "ARCHIVED"),
            nullable=False,
        ),
        sa.Column("source", _enum("suppliersource", "MANUAL", "OCR"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organisation_id", "normalized_name", name="uq_supplier_org_name"),
    )
    op.create_index(
        op.f("ix_suppliers_supplier_organisation_id"), "suppliers_supplier", ["organisation_id"]
    )
    op.create_index(
        op.f("ix_suppliers_supplier_normalized_name"), "suppliers_supplier", ["normalized_name"]
    )
    op.create_index(op.f("ix_suppliers_supplier_status"), "suppliers_supplier", ["status"])
    op.create_index(op.f("ix_suppliers_supplier_updated_at"), "suppliers_supplier", ["updated_at"])

    op.create_table(
        "suppliers_alias",
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("supplier_id", sa.Uuid(), nullable=False),
        sa.Column("alias_name", sa.String(length=300), nullable=False),
        sa.Column("normalized_alias", sa.String(length=300), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers_supplier.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "organisation_id", "normalized_alias", name="uq_supplier_alias_org_alias"
        ),
    )
    op.create_index(
        op.f("ix_suppliers_alias_organisation_id"), "suppliers_alias", ["organisation_id"]
    )
    op.create_index(op.f("ix_suppliers_alias_supplier_id"), "suppliers_alias", ["supplier_id"])
    op.create_index(op.f("ix_suppliers_alias_updated_at"), "suppliers_alias", ["updated_at"])

    op.create_table(
        "documents_document",
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.Uuid(), nullable=False),
        sa.Column("source_type", _enum("documentsource", "UPLOAD", "EMAIL", "API"), nullable=False),
        sa.Column("external_ref", sa.String(length=200), nullable=True),
        sa.Column("filename", sa.String(length=512), nullable=False),
        sa.Column("content_type", sa.String(length=200), nullable=False),
        sa.Column("byte_size", sa.Integer(), nullable=False),
        sa.Column("sha256", sa.String(length=64), nullable=False),
        sa.Column("storage_key", sa.String(length=1024), nullable=False),
        sa.Column("processed_storage_key", sa.String(length=1024), nullable=True),
        sa.Column(
            "processing_status",
            _enum(
                "processingstatus",
                "PENDING_OCR",
                "OCR_PROCESSING",
                "OCR_COMPLETE",
                "OCR_FAILED",
                "MANUALLY_UPDATED",
            ),
            nullable=False,
        ),
        sa.Column("ocr_job_id", sa.String(length=200), nullable=True),
        sa.Column("ocr_attempt_count", sa.Integer(), nullable=False),
        sa.Column(
            "ocr_failure_category",
            _enum(
                "ocrfailurecategory",
                "NOT_A_DOCUMENT",
                "PROVIDER_TIMEOUT",
                "DOCUMENT_TYPE_MISMATCH",
                "BLURRY",
                "LOW_RESOLUTION",
                "PROVIDER_ERROR",
                "UNKNOWN",
            ),
            nullable=True,
        ),
        sa.Column("ocr_failure_detail", sa.Text(), nullable=True),
        sa.Column("last_ocr_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("preprocessing_flags", sa.JSON(), nullable=False),
        sa.Column(
            "review_status",
            _enum("reviewstatus", "NONE", "NEEDS_REVIEW", "VERIFIED"),
            nullable=False,
        ),
        sa.Column(
            "verification_source", _enum("verificationsource", "AUTO", "MANUAL"), nullable=True
        ),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["location_id"], ["locations_location.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("storage_key"),
    )
    for column in (
        "organisation_id",
        "location_id",
        "external_ref",
        "sha256",
        "processing_status",
        "ocr_job_id",
        "review_status",
        "deleted_at",
        "updated_at",
    ):
        op.create_index(op.f(f"ix_documents_document_{column}"), "documents_document", [column])

    op.create_table(
        "extraction_ocr_result",
        sa.Column("document_id", sa.Uuid(), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("job_id", sa.String(length=200), nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False),
        sa.Column("word_count", sa.Integer(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("raw_payload", sa.JSON(), nullable=False),
        sa.Column("parsed_payload", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["document_id"], ["documents_document.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_extraction_ocr_result_document_id"),
        "extraction_ocr_result",
        ["document_id"],
        unique=True,
    )
    op.create_index(
        op.f("ix_extraction_ocr_result_updated_at"), "extraction_ocr_result", ["updated_at"]
    )

    op.create_table(
        "invoices_invoice",
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.Uuid(), nullable=False),
        sa.Column("document_id", sa.Uuid(), nullable=False),
        sa.Column("supplier_id", sa.Uuid(), nullable=True),
        sa.Column("invoice_number", sa.String(length=100), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=True),
        sa.Column("tax", sa.Numeric(12, 2), nullable=True),
        sa.Column("total", sa.Numeric(12, 2), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["location_id"], ["locations_location.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents_document.id"]),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers_supplier.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_invoices_invoice_document_id"), "invoices_invoice", ["document_id"], unique=True
    )
    for column in (
        "organisation_id",
        "location_id",
        "supplier_id",
        "is_verified",
        "deleted_at",
        "updated_at",
    ):
        op.create_index(op.f(f"ix_invoices_invoice_{column}"), "invoices_invoice", [column])

    op.create_table(
        "invoices_line_item",
        sa.Column("invoice_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("product_code", sa.String(length=100), nullable=True),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=True),
        sa.Column("unit_label", sa.String(length=50), nullable=True),
        sa.Column("unit_price", sa.Numeric(14, 4), nullable=True),
        sa.Column("line_total", sa.Numeric(12, 2), nullable=True),
        sa.Column("raw_quantity_text", sa.String(length=100), nullable=True),
        sa.Column("raw_unit_price_text", sa.String(length=100), nullable=True),
        sa.Column("raw_line_total_text", sa.String(length=100), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("is_edited", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices_invoice.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_invoices_line_item_invoice_id"), "invoices_line_item", ["invoice_id"])
    op.create_index(op.f("ix_invoices_line_item_updated_at"), "invoices_line_item", ["updated_at"])

    op.create_table(
        "canonical_invoice",
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.Uuid(), nullable=False),
        sa.Column("invoice_id", sa.Uuid(), nullable=False),
        sa.Column("supplier_id", sa.Uuid(), nullable=True),
        sa.Column("source", _enum("canonicalsource", "OCR", "MANUAL"), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("total", sa.Numeric(12, 2), nullable=True),
        sa.Column("line_count", sa.Integer(), nullable=False),
        sa.Column("warning_line_count", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices_invoice.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_canonical_invoice_invoice_id"), "canonical_invoice", ["invoice_id"], unique=True
    )
    for column in ("organisation_id", "location_id", "updated_at"):
        op.create_index(op.f(f"ix_canonical_invoice_{column}"), "canonical_invoice", [column])

    op.create_table(
        "canonical_line_item",
        sa.Column("canonical_invoice_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("source_line_ref", sa.String(length=100), nullable=False),
        sa.Column("raw_description", sa.Text(), nullable=False),
        sa.Column("normalized_description", sa.Text(), nullable=False),
        sa.Column("product_code", sa.String(length=100), nullable=True),
        sa.Column("unit_label", sa.String(length=50), nullable=True),
        sa.Column(
            "unit_category",
            _enum("unitcategory", "WEIGHT", "VOLUME", "UNIT", "UNKNOWN"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=True),
        sa.Column("unit_price", sa.Numeric(14, 4), nullable=True),
        sa.Column("line_total", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("quality_status", _enum("qualitystatus", "OK", "WARN"), nullable=False),
        sa.Column("warn_reasons", sa.JSON(), nullable=False),
        sa.Column(
            "adjustment_status", _enum("adjustmentstatus", "NONE", "MODIFIED"), nullable=False
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["canonical_invoice_id"], ["canonical_invoice.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in (
        "canonical_invoice_id",
        "normalized_description",
        "quality_status",
        "updated_at",
    ):
        op.create_index(op.f(f"ix_canonical_line_item_{column}"), "canonical_line_item", [column])


def downgrade() -> None:
    for table in (
        "canonical_line_item",
        "canonical_invoice",
        "invoices_line_item",
        "invoices_invoice",
        "extraction_ocr_result",
        "documents_document",
        "suppliers_alias",
        "suppliers_supplier",
        "accounting_invoice_record",
        "locations_location",
    ):
        op.drop_table(table)
