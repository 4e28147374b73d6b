"""bankda transactions, deposit history, sync runs

Revision ID: 0002_bankda
Revises: 0001_init
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_bankda"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "bankda_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bkcode", sa.String(length=64), nullable=False),
        sa.Column("bank_code", sa.String(length=16), nullable=True),
        sa.Column("accountnum", sa.String(length=32), nullable=True),
        sa.Column("bkname", sa.String(length=64), nullable=True),
        sa.Column("bkdate", sa.String(length=8), nullable=False),
        sa.Column("bktime", sa.String(length=6), nullable=False),
        sa.Column("bkjukyo", sa.String(length=128), nullable=True),
        sa.Column("bkcontent", sa.String(length=256), nullable=True),
        sa.Column("bketc", sa.String(length=256), nullable=True),
        sa.Column("bkinput", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("bkoutput", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("bkjango", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("match_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("matched_member_id", sa.String(length=36), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("matched_at", sa.DateTime(), nullable=True),
        sa.Column("deposit_charged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deposit_history_id", sa.String(length=36), nullable=True),
        sa.Column("charge_error", sa.String(length=512), nullable=True),
        sa.Column("admin_memo", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_bankda_transactions_bkcode", "bankda_transactions", ["bkcode"], unique=True)
    op.create_index("ix_bankda_transactions_bkdate", "bankda_transactions", ["bkdate"])
    op.create_index("ix_bankda_transactions_match_status", "bankda_transactions", ["match_status"])
    op.create_index("ix_bankda_transactions_matched_member_id", "bankda_transactions", ["matched_member_id"])
    op.create_index("ix_bankda_transactions_bkdate_bktime", "bankda_transactions", ["bkdate", "bktime"])

    op.create_table(
        "deposit_history",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("member_id", sa.String(length=36), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="charge"),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("description", sa.String(length=256), nullable=True),
        sa.Column("bankda_transaction_id", sa.Integer(), sa.ForeignKey("bankda_transactions.id"), nullable=True),
        sa.Column("bkcode", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
        sa.UniqueConstraint("bankda_transaction_id", name="uq_deposit_history_bankda_transaction_id"),
    )
    op.create_index("ix_deposit_history_member_id", "deposit_history", ["member_id"])
    op.create_index("ix_deposit_history_source", "deposit_history", ["source"])
    op.create_index("ix_deposit_history_bkcode", "deposit_history", ["bkcode"])
    op.create_index("ix_deposit_history_created_at", "deposit_history", ["created_at"])

    op.create_table(
        "bankda_sync_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=False),
        sa.Column("processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("matched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unmatched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duplicate_name", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("charge_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cursor", sa.String(length=128), nullable=True),
        sa.Column("error", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_bankda_sync_runs_status", "bankda_sync_runs", ["status"])
    op.create_index("ix_bankda_sync_runs_finished_at", "bankda_sync_runs", ["finished_at"])


def downgrade():
    op.drop_index("ix_bankda_sync_runs_finished_at", table_name="bankda_sync_runs")
    op.drop_index("ix_bankda_sync_runs_status", table_name="bankda_sync_runs")
    op.drop_table("bankda_sync_runs")
    op.drop_index("ix_deposit_history_created_at", table_name="deposit_history")
    op.drop_index("ix_deposit_history_bkcode", table_name="deposit_history")
    op.drop_index("ix_deposit_history_source", table_name="deposit_history")
    op.drop_index("ix_deposit_history_member_id", table_name="deposit_history")
    op.drop_table("deposit_history")
    op.drop_index("ix_bankda_transactions_bkdate_bktime", table_name="bankda_transactions")
    op.drop_index("ix_bankda_transactions_matched_member_id", table_name="bankda_transactions")
    op.drop_index("ix_bankda_transactions_match_status", table_name="bankda_transactions")
    op.drop_index("ix_bankda_transactions_bkdate", table_name="bankda_transactions")
    op.drop_index("ix_bankda_transactions_bkcode", table_name="bankda_transactions")
    op.drop_table("bankda_transactions")
