"""audit_log table

Revision ID: 7c4e1d2a9b30
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Identifiants Alembic
revision = "7c4e1d2a9b30"
down_revision = None
branch_labels = None
depends_on = None

JSONDocument = sa.JSON(none_as_null=True).with_variant(postgresql.JSONB(none_as_null=True), "postgresql")


def upgrade():
    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer, "sqlite"), primary_key=True, autoincrement=True),
        sa.Column("schema_name", sa.Text, nullable=False),
        sa.Column("table_name", sa.Text, nullable=False),
        sa.Column("action", sa.String(length=1), nullable=False),
        sa.Column("row_pk", JSONDocument, nullable=True),
        sa.Column("old_values", JSONDocument, nullable=True),
        sa.Column("new_values", JSONDocument, nullable=True),
        sa.Column("client_query", sa.Text, nullable=True),
        sa.Column("session_user_name", sa.Text, nullable=False),
        sa.Column("current_user_name", sa.Text, nullable=False),
        sa.Column("action_tstamp_tx", sa.DateTime(timezone=True), nullable=False),
        sa.Column("action_tstamp_stm", sa.DateTime(timezone=True), nullable=False),
        sa.Column("action_tstamp_clk", sa.DateTime(timezone=True), nullable=False),
        sa.Column("transaction_id", sa.BigInteger, nullable=False),
        sa.Column("application_name", sa.Text, nullable=True),
        sa.Column("application_user_name", sa.Text, nullable=True),
        sa.Column("client_addr", sa.String(length=45), nullable=True),
        sa.Column("client_port", sa.Integer, nullable=True),
        sa.CheckConstraint("action IN ('I', 'D', 'U', 'T')", name="ck_audit_log_action"),
    )
    op.create_index("ix_audit_log_table", "audit_log", ["schema_name", "table_name"])
    op.create_index("ix_audit_log_action_tstamp_stm", "audit_log", ["action_tstamp_stm"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])


def downgrade():
    op.drop_index("ix_audit_log_action", table_name="audit_log")
    op.drop_index("ix_audit_log_action_tstamp_stm", table_name="audit_log")
    op.drop_index("ix_audit_log_table", table_name="audit_log")
    op.drop_table("audit_log")
