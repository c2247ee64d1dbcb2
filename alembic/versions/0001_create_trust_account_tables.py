"""create trust account tables

Revision ID: 0001
Revises:
Create Date: 2026-10-17 00:00:00

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _is_sqlite() -> bool:
    return op.get_context().dialect.name == "sqlite"


def upgrade() -> None:
    sqlite = _is_sqlite()
    # SQLite keeps money and dates as ISO/decimal text, matching the repositories.
    money = sa.Text() if sqlite else sa.Numeric(14, 2)
    rate = sa.Text() if sqlite else sa.Numeric(6, 3)
    day = sa.Text() if sqlite else sa.Date()
    timestamp = sa.Text() if sqlite else sa.DateTime(timezone=True)
    flag = sa.Integer() if sqlite else sa.Boolean()
    true = sa.text("1") if sqlite else sa.true()
    false = sa.text("0") if sqlite else sa.false()

    op.create_table(
        "trust_accounts",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("property_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("account_type", sa.Text(), nullable=False),
        sa.Column("bank_name", sa.Text()),
        sa.Column("account_number", sa.Text()),
        sa.Column("routing_number", sa.Text()),
        sa.Column("is_interest_bearing", flag, nullable=False, server_default=false),
        sa.Column("interest_rate", rate),
        sa.Column("balance", money, nullable=False, server_default="0"),
        sa.Column("is_active", flag, nullable=False, server_default=true),
        sa.Column("created_by", sa.Text()),
        sa.Column("created_at", timestamp, nullable=False),
        sa.Column("updated_at", timestamp, nullable=False),
        sa.CheckConstraint(
            "account_type IN ('security_deposit', 'escrow', 'reserve')",
            name="ck_trust_accounts_type",
        ),
    )
    op.create_index("idx_trust_accounts_property", "trust_accounts", ["property_id"])
    op.create_index(
        "uq_trust_accounts_active_type",
        "trust_accounts",
        ["property_id", "account_type"],
        unique=True,
        sqlite_where=sa.text("is_active = 1"),
        postgresql_where=sa.text("is_active"),
    )

    columns = [
        sa.Column("id", sa.Text(), primary_key=True),
    ]
    if not sqlite:
        # Insertion order tie-break; SQLite uses its rowid.
        columns.append(sa.Column("seq", sa.BigInteger(), sa.Identity(), nullable=False))
    columns += [
        sa.Column(
            "trust_account_id",
            sa.Text(),
            sa.ForeignKey("trust_accounts.id"),
            nullable=False,
        ),
        sa.Column("transaction_type", sa.Text(), nullable=False),
        sa.Column("amount", money, nullable=False),
        sa.Column("balance_after", money, nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("reference_number", sa.Text()),
        sa.Column("tenant_id", sa.Text()),
        sa.Column("lease_id", sa.Text()),
        sa.Column("related_account_id", sa.Text(), sa.ForeignKey("trust_accounts.id")),
        sa.Column("transaction_date", day, nullable=False),
        sa.Column("is_reconciled", flag, nullable=False, server_default=false),
        sa.Column("reconciled_date", day),
        sa.Column("reconciled_by", sa.Text()),
        sa.Column("created_by", sa.Text()),
        sa.Column("created_at", timestamp, nullable=False),
        sa.Column("updated_at", timestamp, nullable=False),
        sa.CheckConstraint(
            "transaction_type IN ('deposit', 'withdrawal', 'interest', 'fee')",
            name="ck_trust_txns_type",
        ),
    ]
    op.create_table("trust_account_transactions", *columns)
    op.create_index(
        "idx_trust_txns_account_date",
        "trust_account_transactions",
        ["trust_account_id", "transaction_date"],
    )
    op.create_index(
        "idx_trust_txns_tenant", "trust_account_transactions", ["tenant_id"]
    )
    op.create_index(
        "idx_trust_txns_reconciled",
        "trust_account_transactions",
        ["trust_account_id", "is_reconciled"],
    )


def downgrade() -> None:
    op.drop_index("idx_trust_txns_reconciled", table_name="trust_account_transactions")
    op.drop_index("idx_trust_txns_tenant", table_name="trust_account_transactions")
    op.drop_index("idx_trust_txns_account_date", table_name="trust_account_transactions")
    op.drop_table("trust_account_transactions")
    op.drop_index("uq_trust_accounts_active_type", table_name="trust_accounts")
    op.drop_index("idx_trust_accounts_property", table_name="trust_accounts")
    op.drop_table("trust_accounts")
