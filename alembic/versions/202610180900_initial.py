"""initial schema

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None


def _scoped_key():
    return [
        sa.Column("user_id", sa.Integer(), primary_key=True),
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
    ]


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "transactions",
        *_scoped_key(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(length=5)),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "type", sa.Enum("income", "expense", name="transactiontype"), nullable=False
        ),
        sa.Column(
            "status",
            sa.Enum("completed", "pending", "failed", name="transactionstatus"),
        ),
        sa.Column("account_id", sa.Integer()),
        sa.Column("budget_category_id", sa.Integer()),
        sa.Column("savings_goal_id", sa.Integer()),
        sa.Column("savings_amount_cents", sa.Integer()),
        sa.Column("recurring_bill_id", sa.Integer()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_account", "transactions", ["user_id", "account_id"]
    )
    op.create_index(
        "ix_transactions_user_budget", "transactions", ["user_id", "budget_category_id"]
    )
    op.create_index("ix_transactions_user_name", "transactions", ["user_id", "name"])

    op.create_table(
        "accounts",
        *_scoped_key(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "checking",
                "savings",
                "credit_card",
                "investment",
                "loan",
                "other",
                name="accounttype",
            ),
            nullable=False,
        ),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("limit_cents", sa.Integer()),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="C$"),
        sa.Column("bank_name", sa.String(length=100)),
        sa.Column("account_number", sa.String(length=34)),
        sa.Column("color", sa.String(length=9)),
        sa.Column("icon", sa.String(length=50)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )

    op.create_table(
        "budget_categories",
        *_scoped_key(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("budget_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("spent_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("icon", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("color", sa.String(length=9), nullable=False, server_default=""),
        *_timestamps(),
        sa.CheckConstraint("budget_cents >= 0", name="ck_budget_category_budget_positive"),
    )

    op.create_table(
        "savings_goals",
        *_scoped_key(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("color", sa.String(length=9), nullable=False, server_default=""),
        sa.Column("current_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("target_cents", sa.Integer(), nullable=False),
        sa.Column(
            "monthly_contribution_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("due_date", sa.Date(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "recurring_bills",
        *_scoped_key(),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "frequency",
            sa.Enum(
                "daily",
                "weekly",
                "biweekly",
                "monthly",
                "quarterly",
                "yearly",
                name="billfrequency",
            ),
            nullable=False,
        ),
        sa.Column("next_due_date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=50)),
        sa.Column("color", sa.String(length=9)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text()),
        sa.Column("budget_category_id", sa.Integer()),
        sa.Column("last_paid_date", sa.Date()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_bill_amount_positive"),
    )
    op.create_index(
        "ix_recurring_bills_user_active", "recurring_bills", ["user_id", "is_active"]
    )

    op.create_table(
        "custom_categories",
        *_scoped_key(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("color", sa.String(length=9), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_custom_category_user_name"),
    )


def downgrade():
    op.drop_table("custom_categories")
    op.drop_index("ix_recurring_bills_user_active", table_name="recurring_bills")
    op.drop_table("recurring_bills")
    op.drop_table("savings_goals")
    op.drop_table("budget_categories")
    op.drop_table("accounts")
    op.drop_index("ix_transactions_user_name", table_name="transactions")
    op.drop_index("ix_transactions_user_budget", table_name="transactions")
    op.drop_index("ix_transactions_user_account", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
