"""Users, bank accounts, transactions, pending transfers and match decisions."""

from alembic import op
import sqlalchemy as sa

from ledgerlink.models.pending_transfer import STATUS_CONSISTENCY_SQL

revision = "0001_transfer_engine"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    pending_transfer_status_enum = sa.Enum(
        "pending",
        "partial",
        "matched",
        "cancelled",
        name="pending_transfer_status_enum",
    )
    match_decision_status_enum = sa.Enum(
        "auto_linked",
        "pending_review",
        "rejected",
        "confirmed",
        name="match_decision_status_enum",
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "bank_accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("institution", sa.String(length=255), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_bank_accounts_user_id", "bank_accounts", ["user_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("txn_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("linked_transaction_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["bank_accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["linked_transaction_id"], ["transactions.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_transactions_txn_date", "transactions", ["txn_date"])
    op.create_index("ix_transactions_account_date", "transactions", ["account_id", "txn_date"])
    op.create_index(
        "uq_transactions_linked_transaction_id",
        "transactions",
        ["linked_transaction_id"],
        unique=True,
    )

    op.create_table(
        "pending_transfers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column("from_account_id", sa.Uuid(), nullable=False),
        sa.Column("to_account_id", sa.Uuid(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("transfer_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", pending_transfer_status_enum, nullable=False),
        sa.Column("from_transaction_id", sa.Uuid(), nullable=True),
        sa.Column("to_transaction_id", sa.Uuid(), nullable=True),
        sa.Column("match_tolerance_days", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("match_tolerance_amount", sa.Numeric(18, 2), nullable=False, server_default="0.50"),
        sa.Column("matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["from_account_id"], ["bank_accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_account_id"], ["bank_accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["from_transaction_id"], ["transactions.id"]),
        sa.ForeignKeyConstraint(["to_transaction_id"], ["transactions.id"]),
        sa.CheckConstraint("from_account_id <> to_account_id", name="ck_pending_transfers_distinct_accounts"),
        sa.CheckConstraint("amount > 0", name="ck_pending_transfers_positive_amount"),
        sa.CheckConstraint("match_tolerance_days >= 0", name="ck_pending_transfers_tolerance_days"),
        sa.CheckConstraint("match_tolerance_amount >= 0", name="ck_pending_transfers_tolerance_amount"),
        sa.CheckConstraint(STATUS_CONSISTENCY_SQL, name="ck_pending_transfers_status_consistency"),
    )
    op.create_index("ix_pending_transfers_user_id", "pending_transfers", ["user_id"])
    op.create_index("ix_pending_transfers_from_account_status", "pending_transfers", ["from_account_id", "status"])
    op.create_index("ix_pending_transfers_to_account_status", "pending_transfers", ["to_account_id", "status"])
    op.create_index("ix_pending_transfers_date_status", "pending_transfers", ["transfer_date", "status"])

    op.create_table(
        "match_decisions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("from_transaction_id", sa.Uuid(), nullable=False),
        sa.Column("to_transaction_id", sa.Uuid(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("score_breakdown", sa.JSON(), nullable=True),
        sa.Column("amount_diff", sa.Numeric(18, 2), nullable=False),
        sa.Column("date_diff_days", sa.Integer(), nullable=False),
        sa.Column("status", match_decision_status_enum, nullable=False),
        sa.Column("decided_by", sa.String(length=64), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("link_conflict", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("include_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reject_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["from_transaction_id"], ["transactions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_transaction_id"], ["transactions.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("from_transaction_id", "to_transaction_id", name="uq_match_decisions_pair"),
    )
    op.create_index("ix_match_decisions_user_id", "match_decisions", ["user_id"])
    op.create_index("ix_match_decisions_user_status", "match_decisions", ["user_id", "status"])


def downgrade() -> None:
    op.drop_table("match_decisions")
    op.drop_table("pending_transfers")
    op.drop_table("transactions")
    op.drop_table("bank_accounts")
    op.drop_table("users")
    sa.Enum(name="match_decision_status_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="pending_transfer_status_enum").drop(op.get_bind(), checkfirst=True)
