"""Create loan applications, documents and status history tables"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_loan_engine_tables"
down_revision = None
branch_labels = None
depends_on = None


def _money(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(14, 2), nullable=False, **kwargs)


def upgrade() -> None:
    op.create_table(
        "loan_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("borrower_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("project_type", sa.String(length=40), nullable=False),
        sa.Column("has_coborrower", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _money("property_price"),
        _money("notary_fees", server_default="0"),
        _money("agency_fees", server_default="0"),
        _money("works_amount", server_default="0"),
        _money("down_payment", server_default="0"),
        sa.Column("duration_years", sa.Integer(), nullable=False),
        sa.Column("rate_tier", sa.String(length=20), nullable=False),
        sa.Column("rate_percent", sa.Numeric(6, 2), nullable=False),
        _money("amount"),
        _money("monthly_credit"),
        _money("monthly_insurance"),
        _money("monthly_total"),
        _money("total_interest"),
        _money("total_insurance"),
        _money("bank_fees"),
        _money("total_cost"),
        sa.Column("taeg_estimate", sa.Numeric(6, 2), nullable=False),
        sa.Column("documents_complete", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sequestre_status", sa.String(length=20), nullable=False, server_default="none"),
        _money("sequestre_amount_expected", server_default="0"),
        _money("sequestre_amount_received", server_default="0"),
        sa.Column("sequestre_over_funded", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sequestre_completion_signaled_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("next_action", sa.String(length=500), nullable=True),
        sa.Column("status_changed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('draft', 'pending', 'in_review', 'documents_required', 'processing', "
            "'offer_issued', 'approved', 'funded', 'rejected')",
            name="ck_loan_app_status",
        ),
        sa.CheckConstraint(
            "project_type IN ('primary_residence', 'secondary_residence', 'rental_investment', "
            "'construction', 'renovation')",
            name="ck_loan_app_project_type",
        ),
        sa.CheckConstraint(
            "sequestre_status IN ('none', 'partial', 'complete')",
            name="ck_loan_app_sequestre_status",
        ),
        sa.CheckConstraint("amount > 0", name="ck_loan_app_amount_positive"),
        sa.CheckConstraint("duration_years BETWEEN 5 AND 30", name="ck_loan_app_duration_bounds"),
        sa.CheckConstraint("rate_percent >= 0", name="ck_loan_app_rate_nonneg"),
        sa.CheckConstraint("down_payment >= 0", name="ck_loan_app_down_payment_nonneg"),
        sa.CheckConstraint("sequestre_amount_expected >= 0", name="ck_loan_app_sequestre_expected_nonneg"),
        sa.CheckConstraint("sequestre_amount_received >= 0", name="ck_loan_app_sequestre_received_nonneg"),
        sa.CheckConstraint("version >= 1", name="ck_loan_app_version_positive"),
    )
    op.create_index("ix_loan_applications_borrower_id", "loan_applications", ["borrower_id"])
    op.create_index("ix_loan_applications_status", "loan_applications", ["status"])

    op.create_table(
        "loan_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "loan_application_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("loan_applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("owner", sa.String(length=20), nullable=False, server_default="primary"),
        sa.Column("direction", sa.String(length=20), nullable=False, server_default="outgoing"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("storage_key", sa.String(length=1024), nullable=False),
        sa.Column("content_type", sa.String(length=100), nullable=True),
        sa.Column("uploaded_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_loan_document_status"),
        sa.CheckConstraint("owner IN ('primary', 'co_borrower')", name="ck_loan_document_owner"),
        sa.CheckConstraint("direction IN ('outgoing', 'incoming')", name="ck_loan_document_direction"),
    )
    op.create_index("ix_loan_documents_loan_application_id", "loan_documents", ["loan_application_id"])
    op.create_index(
        "ix_loan_documents_loan_category_owner",
        "loan_documents",
        ["loan_application_id", "category", "owner"],
    )

    op.create_table(
        "loan_status_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "loan_application_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("loan_applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("old_status", sa.String(length=30), nullable=True),
        sa.Column("new_status", sa.String(length=30), nullable=False),
        sa.Column("trigger", sa.String(length=30), nullable=False, server_default="manual"),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("next_action", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_loan_status_history_loan_application_id",
        "loan_status_history",
        ["loan_application_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_loan_status_history_loan_application_id", table_name="loan_status_history")
    op.drop_table("loan_status_history")
    op.drop_index("ix_loan_documents_loan_category_owner", table_name="loan_documents")
    op.drop_index("ix_loan_documents_loan_application_id", table_name="loan_documents")
    op.drop_table("loan_documents")
    op.drop_index("ix_loan_applications_status", table_name="loan_applications")
    op.drop_index("ix_loan_applications_borrower_id", table_name="loan_applications")
    op.drop_table("loan_applications")
