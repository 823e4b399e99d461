"""billing baseline: users, plans, payments, subscriptions

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

payment_method = sa.Enum("GATEWAY", "BANK_TRANSFER", name="paymentmethod")
payment_status = sa.Enum("PENDING", "SUCCESS", "FAILED", name="paymentstatus")
subscription_status = sa.Enum("TRIAL", "ACTIVE", "EXPIRED", "CANCELLED", name="subscriptionstatus")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False, primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "subscription_plans",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False, primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("price_monthly", sa.Integer(), nullable=False),
        sa.Column("price_yearly", sa.Integer(), nullable=False),
        sa.Column("max_job_posts", sa.Integer(), nullable=False),
        sa.Column("max_view_profiles", sa.Integer(), nullable=False),
        sa.Column("radius_km", sa.Integer(), nullable=False),
        sa.Column("features", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
    )
    op.create_index("ix_subscription_plans_slug", "subscription_plans", ["slug"], unique=True)

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False, primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("factory_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("transaction_id", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("method", payment_method, nullable=False),
        sa.Column("transfer_note", sa.String(length=64), nullable=True),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("intent_payload", sa.JSON(), nullable=True),
        sa.Column("gateway_response", sa.JSON(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(["factory_id"], ["users.id"], name="fk_payments_factory"),
        sa.ForeignKeyConstraint(["resolved_by"], ["users.id"], name="fk_payments_resolved_by"),
    )
    op.create_index("ix_payments_transaction_id", "payments", ["transaction_id"], unique=True)
    op.create_index("ix_payments_factory_id", "payments", ["factory_id"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False, primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("factory_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("plan_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("payment_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("status", subscription_status, nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("trial_ends_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["factory_id"], ["users.id"], name="fk_subscriptions_factory"),
        sa.ForeignKeyConstraint(["plan_id"], ["subscription_plans.id"], name="fk_subscriptions_plan"),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], name="fk_subscriptions_payment"),
    )
    op.create_index("ix_subscriptions_factory_id", "subscriptions", ["factory_id"])
    op.create_index("ix_subscriptions_factory_status", "subscriptions", ["factory_id", "status"])


def downgrade() -> None:
    op.drop_index("ix_subscriptions_factory_status", table_name="subscriptions")
    op.drop_index("ix_subscriptions_factory_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_index("ix_payments_factory_id", table_name="payments")
    op.drop_index("ix_payments_transaction_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_subscription_plans_slug", table_name="subscription_plans")
    op.drop_table("subscription_plans")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    subscription_status.drop(op.get_bind(), checkfirst=True)
    payment_status.drop(op.get_bind(), checkfirst=True)
    payment_method.drop(op.get_bind(), checkfirst=True)
