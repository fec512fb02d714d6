from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from audit_json.db.base import Base

# JSONB sous Postgres, JSON générique ailleurs (SQLite en local / tests).
# None -> NULL SQL (et non le littéral JSON null)
JSONDocument = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


class AuditLog(Base):
    """Historique des actions auditées sur les tables attachées (append-only)."""

    __tablename__ = "audit_log"
    __table_args__ = (
        CheckConstraint("action IN ('I', 'D', 'U', 'T')", name="ck_audit_log_action"),
        Index("ix_audit_log_table", "schema_name", "table_name"),
        Index("ix_audit_log_action_tstamp_stm", "action_tstamp_stm"),
        Index("ix_audit_log_action", "action"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    schema_name = Column(Text, nullable=False)
    table_name = Column(Text, nullable=False)
    # I = insert, D = delete, U = update, T = truncate
    action = Column(String(1), nullable=False)
    # Clé de la ligne touchée ; NULL pour un TRUNCATE
    row_pk = Column(JSONDocument, nullable=True)
    # UPDATE : champs modifiés ; DELETE : ligne complète
    old_values = Column(JSONDocument, nullable=True)
    # INSERT : ligne complète ; UPDATE : champs modifiés
    new_values = Column(JSONDocument, nullable=True)
    client_query = Column(Text, nullable=True)
    session_user_name = Column(Text, nullable=False)
    current_user_name = Column(Text, nullable=False)
    action_tstamp_tx = Column(DateTime(timezone=True), nullable=False)
    action_tstamp_stm = Column(DateTime(timezone=True), nullable=False)
    action_tstamp_clk = Column(DateTime(timezone=True), nullable=False)
    transaction_id = Column(BigInteger, nullable=False)
    application_name = Column(Text, nullable=True)
    application_user_name = Column(Text, nullable=True)
    client_addr = Column(String(45), nullable=True)
    client_port = Column(Integer, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, table={self.schema_name}.{self.table_name}, "
            f"action={self.action}, row_pk={self.row_pk})>"
        )
