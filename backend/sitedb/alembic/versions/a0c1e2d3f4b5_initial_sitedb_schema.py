"""initial sitedb schema

Revision ID: a0c1e2d3f4b5
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a0c1e2d3f4b5"
down_revision = None
branch_labels = None
depends_on = None


# Enum columns use native_enum=False on the models, so they are plain VARCHARs here.
ENUM_LENGTH = 32


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=36), nullable=False)


def _fk(name: str, target: str, *, ondelete: str = "SET NULL", nullable: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.String(length=36),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def _enum(name: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.String(length=ENUM_LENGTH), nullable=nullable)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    op.create_table(
        "organizations",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        _enum("organization_type"),
        sa.Column("business_registration_number", sa.String(length=16), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("address", sa.String(length=512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_registration_number", name="uq_organizations_brn"),
    )
    op.create_index("ix_organizations_name", "organizations", ["name"])

    op.create_table(
        "users",
        _id(),
        _fk("organization_id", "organizations.id"),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        _enum("role"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lockout_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_ip", sa.String(length=64), nullable=True),
        sa.Column("last_login_user_agent", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_organization_id", "users", ["organization_id"])
    op.create_index("ix_users_role_active", "users", ["role", "is_active"])

    op.create_table(
        "idempotency_keys",
        _id(),
        sa.Column("scope", sa.String(length=128), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("payload_hash", sa.String(length=64), nullable=False),
        sa.Column("resource_id", sa.String(length=36), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),
    )
    op.create_index("ix_idempotency_keys_scope", "idempotency_keys", ["scope"])

    # ------------------------------------------------------------------
    # Audit and security
    # ------------------------------------------------------------------
    op.create_table(
        "activity_logs",
        _id(),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("user_email", sa.String(length=255), nullable=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        _enum("severity"),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"])
    op.create_index("ix_activity_logs_action_time", "activity_logs", ["action", "created_at"])
    op.create_index("ix_activity_logs_ip_time", "activity_logs", ["ip_address", "created_at"])
    op.create_index("ix_activity_logs_severity", "activity_logs", ["severity"])

    op.create_table(
        "data_exports",
        _id(),
        _fk("user_id", "users.id"),
        sa.Column("export_type", sa.String(length=64), nullable=False),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_data_exports_started", "data_exports", ["started_at"])

    op.create_table(
        "blocked_ips",
        _id(),
        sa.Column("ip_address", sa.String(length=64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("blocked_by", sa.String(length=64), nullable=True),
        sa.Column(
            "blocked_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_blocked_ips_ip_address", "blocked_ips", ["ip_address"], unique=True)

    # ------------------------------------------------------------------
    # Sites
    # ------------------------------------------------------------------
    op.create_table(
        "sites",
        _id(),
        _fk("organization_id", "organizations.id"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _enum("status"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("manager_name", sa.String(length=128), nullable=True),
        sa.Column("manager_phone", sa.String(length=32), nullable=True),
        sa.Column("safety_manager_name", sa.String(length=128), nullable=True),
        sa.Column("safety_manager_phone", sa.String(length=32), nullable=True),
        sa.Column("accommodation_name", sa.String(length=255), nullable=True),
        sa.Column("accommodation_address", sa.String(length=512), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _fk("created_by", "users.id"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sites_name", "sites", ["name"])
    op.create_index("ix_sites_status_deleted", "sites", ["status", "is_deleted"])

    op.create_table(
        "site_assignments",
        _id(),
        _fk("site_id", "sites.id", ondelete="CASCADE", nullable=False),
        _fk("user_id", "users.id", ondelete="CASCADE", nullable=False),
        _enum("role"),
        sa.Column("assigned_date", sa.Date(), nullable=False),
        sa.Column("unassigned_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_site_assignments_user_site", "site_assignments", ["user_id", "site_id"])
    op.create_index("ix_site_assignments_site_active", "site_assignments", ["site_id", "is_active"])

    # ------------------------------------------------------------------
    # Materials
    # ------------------------------------------------------------------
    op.create_table(
        "materials",
        _id(),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("unit", sa.String(length=16), nullable=False, server_default="EA"),
        sa.Column("specification", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("unit_price", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_materials_code"),
    )
    op.create_index("ix_materials_name", "materials", ["name"])
    op.create_index("ix_materials_category", "materials", ["category"])

    op.create_table(
        "material_inventory",
        _id(),
        _fk("site_id", "sites.id", ondelete="CASCADE", nullable=False),
        _fk("material_id", "materials.id", ondelete="CASCADE", nullable=False),
        sa.Column("current_stock", sa.Float(), nullable=False, server_default="0"),
        sa.Column("minimum_stock", sa.Float(), nullable=False, server_default="0"),
        sa.Column("maximum_stock", sa.Float(), nullable=True),
        sa.Column("last_purchase_price", sa.Float(), nullable=True),
        sa.Column("last_purchase_date", sa.Date(), nullable=True),
        sa.Column("storage_location", sa.String(length=128), nullable=True),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("site_id", "material_id", name="uq_material_inventory_site_material"),
    )

    op.create_table(
        "material_transactions",
        _id(),
        _fk("site_id", "sites.id", ondelete="CASCADE", nullable=False),
        _fk("material_id", "materials.id", ondelete="CASCADE", nullable=False),
        _enum("transaction_type"),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit_price", sa.Float(), nullable=True),
        sa.Column("reference_type", sa.String(length=64), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "transaction_date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        _fk("created_by", "users.id"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_material_transactions_site_date", "material_transactions", ["site_id", "transaction_date"]
    )
    op.create_index(
        "ix_material_transactions_material", "material_transactions", ["material_id", "transaction_date"]
    )

    op.create_table(
        "material_requests",
        _id(),
        sa.Column("request_number", sa.String(length=32), nullable=False),
        _fk("site_id", "sites.id", ondelete="CASCADE", nullable=False),
        _fk("requested_by", "users.id"),
        sa.Column("request_date", sa.Date(), nullable=False),
        sa.Column("required_date", sa.Date(), nullable=True),
        _enum("priority"),
        _enum("status"),
        _fk("approved_by", "users.id"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("request_number", name="uq_material_requests_number"),
    )
    op.create_index("ix_material_requests_site_status", "material_requests", ["site_id", "status"])

    op.create_table(
        "material_request_items",
        _id(),
        _fk("request_id", "material_requests.id", ondelete="CASCADE", nullable=False),
        _fk("material_id", "materials.id", ondelete="CASCADE", nullable=False),
        sa.Column("requested_quantity", sa.Float(), nullable=False),
        sa.Column("approved_quantity", sa.Float(), nullable=True),
        sa.Column("delivered_quantity", sa.Float(), nullable=True),
        sa.Column("unit_price", sa.Float(), nullable=True),
        sa.Column("total_price", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_material_request_items_request_id", "material_request_items", ["request_id"])

    op.create_table(
        "material_productions",
        _id(),
        sa.Column("production_number", sa.String(length=32), nullable=False),
        _fk("site_id", "sites.id", ondelete="CASCADE", nullable=False),
        _fk("material_id", "materials.id", ondelete="CASCADE", nullable=False),
        sa.Column("produced_quantity", sa.Float(), nullable=False),
        sa.Column("production_date", sa.Date(), nullable=False),
        sa.Column("batch_number", sa.String(length=64), nullable=True),
        _enum("quality_status"),
        sa.Column("quality_notes", sa.Text(), nullable=True),
        _fk("created_by", "users.id"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("production_number", name="uq_material_productions_number"),
    )
    op.create_index(
        "ix_material_productions_site_date", "material_productions", ["site_id", "production_date"]
    )

    op.create_table(
        "material_shipments",
        _id(),
        sa.Column("shipment_number", sa.String(length=32), nullable=False),
        _fk("site_id", "sites.id", ondelete="CASCADE", nullable=False),
        _enum("status"),
        sa.Column("carrier", sa.String(length=64), nullable=False, server_default="other"),
        sa.Column("tracking_number", sa.String(length=128), nullable=True),
        sa.Column("shipment_date", sa.Date(), nullable=True),
        sa.Column("expected_delivery", sa.Date(), nullable=True),
        sa.Column("actual_delivery", sa.Date(), nullable=True),
        sa.Column("delivery_address", sa.String(length=512), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _fk("created_by", "users.id"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("shipment_number", name="uq_material_shipments_number"),
    )
    op.create_index("ix_material_shipments_site_status", "material_shipments", ["site_id", "status"])

    op.create_table(
        "material_shipment_items",
        _id(),
        _fk("shipment_id", "material_shipments.id", ondelete="CASCADE", nullable=False),
        _fk("material_id", "materials.id", ondelete="CASCADE", nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit_price", sa.Float(), nullable=True),
        sa.Column("total_price", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_material_shipment_items_shipment_id", "material_shipment_items", ["shipment_id"])

    # ------------------------------------------------------------------
    # Daily reports
    # ------------------------------------------------------------------
    op.create_table(
        "daily_reports",
        _id(),
        _fk("site_id", "sites.id", ondelete="CASCADE", nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("member_name", sa.String(length=128), nullable=True),
        sa.Column("process_type", sa.String(length=128), nullable=True),
        sa.Column("total_workers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("npc1000_incoming", sa.Float(), nullable=True),
        sa.Column("npc1000_used", sa.Float(), nullable=True),
        sa.Column("npc1000_remaining", sa.Float(), nullable=True),
        sa.Column("issues", sa.Text(), nullable=True),
        sa.Column("hq_request", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _enum("status"),
        _fk("approved_by", "users.id"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _fk("created_by", "users.id"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("site_id", "work_date", "created_by", name="uq_daily_reports_site_date_author"),
    )
    op.create_index("ix_daily_reports_site_date", "daily_reports", ["site_id", "work_date"])
    op.create_index("ix_daily_reports_status", "daily_reports", ["status"])

    op.create_table(
        "daily_report_workers",
        _id(),
        _fk("report_id", "daily_reports.id", ondelete="CASCADE", nullable=False),
        _fk("worker_id", "users.id"),
        sa.Column("worker_name", sa.String(length=128), nullable=False),
        sa.Column("labor_hours", sa.Float(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_daily_report_workers_report_id", "daily_report_workers", ["report_id"])
    op.create_index("ix_daily_report_workers_worker_id", "daily_report_workers", ["worker_id"])

    op.create_table(
        "daily_report_photos",
        _id(),
        _fk("report_id", "daily_reports.id", ondelete="CASCADE", nullable=False),
        _enum("photo_type"),
        sa.Column("file_url", sa.String(length=1024), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("upload_order", sa.Integer(), nullable=False, server_default="0"),
        _fk("uploaded_by", "users.id"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_daily_report_photos_report_type", "daily_report_photos", ["report_id", "photo_type"]
    )

    op.create_table(
        "headquarters_requests",
        _id(),
        _fk("user_id", "users.id"),
        _fk("site_id", "sites.id", ondelete="CASCADE", nullable=False),
        _fk("daily_report_id", "daily_reports.id"),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=64), nullable=False, server_default="daily_report"),
        _enum("status"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_headquarters_requests_site_id", "headquarters_requests", ["site_id"])

    # ------------------------------------------------------------------
    # Salary
    # ------------------------------------------------------------------
    op.create_table(
        "tax_rates",
        _id(),
        _enum("employment_type"),
        sa.Column("tax_name", sa.String(length=64), nullable=False),
        sa.Column("rate", sa.Float(), nullable=False),
        _enum("calculation_method"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employment_type", "tax_name", name="uq_tax_rates_type_name"),
    )

    op.create_table(
        "worker_salary_settings",
        _id(),
        _fk("worker_id", "users.id", ondelete="CASCADE", nullable=False),
        _enum("employment_type"),
        sa.Column("daily_rate", sa.Float(), nullable=False),
        sa.Column("custom_tax_rates", sa.JSON(), nullable=True),
        sa.Column("bank_account_info", sa.JSON(), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _fk("created_by", "users.id"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_worker_salary_settings_worker_active", "worker_salary_settings", ["worker_id", "is_active"]
    )

    op.create_table(
        "salary_rules",
        _id(),
        sa.Column("rule_name", sa.String(length=128), nullable=False),
        _enum("rule_type"),
        sa.Column("base_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("multiplier", sa.Float(), nullable=True),
        _fk("site_id", "sites.id", ondelete="CASCADE"),
        sa.Column("role", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "salary_records",
        _id(),
        _fk("worker_id", "users.id", ondelete="CASCADE", nullable=False),
        _fk("site_id", "sites.id"),
        sa.Column("work_date", sa.Date(), nullable=False),
        _enum("employment_type", nullable=True),
        sa.Column("labor_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("regular_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("overtime_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("base_pay", sa.Float(), nullable=False, server_default="0"),
        sa.Column("overtime_pay", sa.Float(), nullable=False, server_default="0"),
        sa.Column("bonus_pay", sa.Float(), nullable=False, server_default="0"),
        sa.Column("deductions", sa.Float(), nullable=False, server_default="0"),
        sa.Column("income_tax", sa.Float(), nullable=True),
        sa.Column("resident_tax", sa.Float(), nullable=True),
        sa.Column("national_pension", sa.Float(), nullable=True),
        sa.Column("health_insurance", sa.Float(), nullable=True),
        sa.Column("employment_insurance", sa.Float(), nullable=True),
        sa.Column("long_term_care", sa.Float(), nullable=True),
        sa.Column("tax_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("tax_details", sa.JSON(), nullable=True),
        sa.Column("total_pay", sa.Float(), nullable=False, server_default="0"),
        _enum("status"),
        sa.Column("notes", sa.Text(), nullable=True),
        _fk("created_by", "users.id"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_salary_records_worker_date", "salary_records", ["worker_id", "work_date"])
    op.create_index("ix_salary_records_site_date", "salary_records", ["site_id", "work_date"])
    op.create_index("ix_salary_records_status", "salary_records", ["status"])

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    op.create_table(
        "documents",
        _id(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("file_url", sa.String(length=1024), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mime_type", sa.String(length=128), nullable=False),
        _enum("document_type"),
        sa.Column("folder_path", sa.String(length=512), nullable=True),
        _fk("owner_id", "users.id", ondelete="CASCADE", nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        _fk("site_id", "sites.id"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_documents_owner_type", "documents", ["owner_id", "document_type"])
    op.create_index("ix_documents_site", "documents", ["site_id"])

    op.create_table(
        "document_shares",
        _id(),
        _fk("document_id", "documents.id", ondelete="CASCADE", nullable=False),
        _fk("shared_with_user_id", "users.id", ondelete="CASCADE", nullable=False),
        _enum("permission"),
        _fk("shared_by", "users.id"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id", "shared_with_user_id", name="uq_document_shares_doc_user"),
    )
    op.create_index("ix_document_shares_shared_with", "document_shares", ["shared_with_user_id"])

    op.create_table(
        "user_required_documents",
        _id(),
        _fk("user_id", "users.id", ondelete="CASCADE", nullable=False),
        _enum("document_type"),
        _enum("status"),
        _fk("document_id", "documents.id"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        _fk("reviewed_by", "users.id"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "document_type", name="uq_user_required_documents_user_type"),
    )

    op.create_table(
        "markup_documents",
        _id(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("original_blueprint_url", sa.String(length=1024), nullable=False),
        sa.Column("original_blueprint_filename", sa.String(length=255), nullable=False),
        sa.Column("markup_data", sa.JSON(), nullable=False),
        sa.Column("markup_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("preview_image_url", sa.String(length=1024), nullable=True),
        _fk("site_id", "sites.id"),
        _fk("linked_daily_report_id", "daily_reports.id"),
        _fk("created_by", "users.id"),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_markup_documents_site_deleted", "markup_documents", ["site_id", "is_deleted"])

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    op.create_table(
        "notifications",
        _id(),
        _fk("user_id", "users.id", ondelete="CASCADE", nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        _enum("type"),
        sa.Column("action_url", sa.String(length=512), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _fk("created_by", "users.id"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "is_read"])
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])

    op.create_table(
        "email_logs",
        _id(),
        _created_at(),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recipient", sa.String(length=255), nullable=False),
        sa.Column("recipient_name", sa.String(length=255), nullable=True),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("template_key", sa.String(length=128), nullable=False),
        _enum("notification_type"),
        _enum("priority"),
        _enum("status"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("context_json", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        _fk("sender_id", "users.id"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_email_logs_status_scheduled", "email_logs", ["status", "scheduled_at"])
    op.create_index("ix_email_logs_recipient_created", "email_logs", ["recipient", "created_at"])
    op.create_index("ix_email_logs_template_key", "email_logs", ["template_key"])
    op.create_index("ix_email_logs_correlation_id", "email_logs", ["correlation_id"])

    op.create_table(
        "email_templates",
        _id(),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _enum("notification_type"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key", name="uq_email_templates_key"),
    )


def downgrade() -> None:
    for table in (
        "email_templates",
        "email_logs",
        "notifications",
        "markup_documents",
        "user_required_documents",
        "document_shares",
        "documents",
        "salary_records",
        "salary_rules",
        "worker_salary_settings",
        "tax_rates",
        "headquarters_requests",
        "daily_report_photos",
        "daily_report_workers",
        "daily_reports",
        "material_shipment_items",
        "material_shipments",
        "material_productions",
        "material_request_items",
        "material_requests",
        "material_transactions",
        "material_inventory",
        "materials",
        "site_assignments",
        "sites",
        "blocked_ips",
        "data_exports",
        "activity_logs",
        "idempotency_keys",
        "users",
        "organizations",
    ):
        op.drop_table(table)
