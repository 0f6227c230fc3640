"""initial_portal_schema

Creates the financing portal tables:
  - districts, branches, products      - organisational directory
  - users                              - portal principals (role + home branch)
  - approver_assignments               - approver routing rules (tagged scope)
  - applications                       - financing applications
  - application_status_history         - append-only transition log
  - notifications                      - in-app notifications

Tables created conditionally (IF NOT EXISTS semantics) so the migration can
run against a development database already populated by db.create_all().

Revision ID: a1f3c9e27b40
Revises:
Create Date: 2026-10-19 09:12:44.201733
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1f3c9e27b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Directory ─────────────────────────────────────────────────────────
    if "districts" not in existing:
        op.create_table(
            "districts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
            sa.UniqueConstraint("code"),
        )

    if "branches" not in existing:
        op.create_table(
            "branches",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("district_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=True),
            sa.Column("address", sa.String(length=500), nullable=True),
            sa.Column("phone", sa.String(length=50), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["district_id"], ["districts.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("district_id", "name", name="uq_branch_district_name"),
        )
        op.create_index("ix_branches_district_id", "branches", ["district_id"])

    if "products" not in existing:
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("product_code", sa.String(length=50), nullable=True),
            sa.Column(
                "is_active", sa.Boolean(), nullable=False, server_default=sa.true(),
                comment="False = soft-deleted; hidden from the submission picker.",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    # ── Users & routing ───────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=False),
            sa.Column(
                "role", sa.String(length=30), nullable=False,
                comment="branch_user | head_office_approver | system_admin",
            ),
            sa.Column(
                "branch_id", sa.Integer(), nullable=True,
                comment="Required iff role = branch_user",
            ),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_branch_id", "users", ["branch_id"])
        op.create_index("ix_users_role", "users", ["role"])

    if "approver_assignments" not in existing:
        op.create_table(
            "approver_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("approver_id", sa.Integer(), nullable=False),
            sa.Column(
                "scope_type", sa.String(length=20), nullable=False,
                comment="district | branch | product",
            ),
            sa.Column("scope_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "scope_type IN ('district', 'branch', 'product')", name="ck_assignment_scope_type",
            ),
            sa.ForeignKeyConstraint(["approver_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("approver_id", "scope_type", "scope_id", name="uq_assignment_approver_scope"),
        )
        op.create_index("ix_approver_assignments_approver_id", "approver_assignments", ["approver_id"])
        op.create_index("idx_assignment_scope", "approver_assignments", ["scope_type", "scope_id"])

    # ── Applications ──────────────────────────────────────────────────────
    if "applications" not in existing:
        op.create_table(
            "applications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column(
                "application_number", sa.String(length=30), nullable=False,
                comment="APP-YYYYMMDD-NNNN",
            ),
            sa.Column("customer_name", sa.String(length=200), nullable=False),
            sa.Column("customer_id", sa.String(length=100), nullable=True, comment="National ID / CIF, optional"),
            sa.Column("phone_number", sa.String(length=50), nullable=False),
            sa.Column("product_id", sa.Integer(), nullable=False),
            sa.Column("application_amount", sa.Numeric(14, 2), nullable=True),
            sa.Column("profit_margin", sa.Numeric(6, 3), nullable=True, comment="Percent"),
            sa.Column("tenure_months", sa.Integer(), nullable=True),
            sa.Column("monthly_installment", sa.Numeric(14, 2), nullable=True),
            sa.Column("remarks", sa.Text(), nullable=True),
            sa.Column("branch_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("submitted_by", sa.Integer(), nullable=False),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["submitted_by"], ["users.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("application_number"),
        )
        op.create_index("ix_applications_product_id", "applications", ["product_id"])
        op.create_index("ix_applications_branch_id", "applications", ["branch_id"])
        op.create_index("idx_application_status", "applications", ["status"])
        op.create_index("idx_application_submitted_by", "applications", ["submitted_by"])
        op.create_index("idx_application_branch_product", "applications", ["branch_id", "product_id"])

    if "application_status_history" not in existing:
        op.create_table(
            "application_status_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("from_status", sa.String(length=20), nullable=True),
            sa.Column("to_status", sa.String(length=20), nullable=False),
            sa.Column("action_by", sa.Integer(), nullable=False),
            sa.Column("action_by_role", sa.String(length=30), nullable=False),
            sa.Column("reason", sa.Text(), nullable=True, comment="Required for reject / return"),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["action_by"], ["users.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "idx_history_application", "application_status_history", ["application_id", "created_at"],
        )

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column(
                "type", sa.String(length=30), nullable=False,
                comment="status_changed | returned | application_submitted",
            ),
            sa.Column("related_application_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["related_application_id"], ["applications.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("idx_notification_user_read", "notifications", ["user_id", "is_read"])


def downgrade():
    op.drop_table("notifications")
    op.drop_table("application_status_history")
    op.drop_table("applications")
    op.drop_table("approver_assignments")
    op.drop_table("users")
    op.drop_table("products")
    op.drop_table("branches")
    op.drop_table("districts")
