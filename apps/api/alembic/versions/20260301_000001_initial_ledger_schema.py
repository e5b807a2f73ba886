"""initial credit ledger schema

Revision ID: 20260301_000001
Revises:
Create Date: 2026-03-01 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20260301_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "organizations",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "organization_members",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("enrichment_limit", sa.Integer(), nullable=True),
        sa.Column("icp_limit", sa.Integer(), nullable=True),
        sa.Column("enrichment_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("icp_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint("enrichment_used >= 0", name="ck_org_members_enrichment_used"),
        sa.CheckConstraint("icp_used >= 0", name="ck_org_members_icp_used"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
    )
    op.create_index("ix_organization_members_org_id", "organization_members", ["org_id"], unique=False)
    op.create_index("ix_organization_members_user_id", "organization_members", ["user_id"], unique=False)

    op.create_table(
        "organization_credits",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("plan_id", sa.String(), nullable=False, server_default="free"),
        sa.Column("enrichment_limit", sa.Integer(), nullable=False, server_default="200"),
        sa.Column("icp_limit", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("enrichment_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("icp_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("billing_cycle_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("billing_cycle_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint("enrichment_used >= 0", name="ck_org_credits_enrichment_used"),
        sa.CheckConstraint("icp_used >= 0", name="ck_org_credits_icp_used"),
        sa.CheckConstraint("enrichment_limit >= 0", name="ck_org_credits_enrichment_limit"),
        sa.CheckConstraint("icp_limit >= 0", name="ck_org_credits_icp_limit"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id"),
    )

    op.create_table(
        "searches",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_searches_org_id", "searches", ["org_id"], unique=False)

    op.create_table(
        "credit_history",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("credit_type", sa.String(), nullable=False),
        sa.Column("transaction_type", sa.String(), nullable=False),
        sa.Column("credits_used", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("search_id", sa.String(), nullable=True),
        sa.Column("company_id", sa.String(), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["search_id"], ["searches.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_credit_history_org_id", "credit_history", ["org_id"], unique=False)
    op.create_index("ix_credit_history_user_id", "credit_history", ["user_id"], unique=False)
    op.create_index("ix_credit_history_company_id", "credit_history", ["company_id"], unique=False)
    op.create_index("ix_credit_history_created_at", "credit_history", ["created_at"], unique=False)
    op.create_index(
        "ix_credit_history_org_type_created",
        "credit_history",
        ["org_id", "credit_type", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_credit_history_org_type_created", table_name="credit_history")
    op.drop_index("ix_credit_history_created_at", table_name="credit_history")
    op.drop_index("ix_credit_history_company_id", table_name="credit_history")
    op.drop_index("ix_credit_history_user_id", table_name="credit_history")
    op.drop_index("ix_credit_history_org_id", table_name="credit_history")
    op.drop_table("credit_history")
    op.drop_index("ix_searches_org_id", table_name="searches")
    op.drop_table("searches")
    op.drop_table("organization_credits")
    op.drop_index("ix_organization_members_user_id", table_name="organization_members")
    op.drop_index("ix_organization_members_org_id", table_name="organization_members")
    op.drop_table("organization_members")
    op.drop_table("organizations")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
