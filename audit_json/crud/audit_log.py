# audit_json/crud/audit_log.py

import itertools
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Protocol, Tuple

from sqlalchemy import insert, select
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session

from audit_json.models.audit_log import AuditLog
from audit_json.schemas.audit_entry import AuditAction, AuditContext, AuditEntry

# Option d'exécution posée sur les requêtes internes (écriture du journal,
# snapshots) : elles ne comptent jamais comme "requête client".
INTERNAL_EXECUTION_OPTION = "audit_json_internal"


class AuditLogSink(Protocol):
    def append(self, entry: AuditEntry) -> AuditEntry:
        """Ajoute l'entrée au journal et la retourne avec son id."""
        ...


def entry_to_row(entry: AuditEntry) -> Dict[str, Any]:
    ctx = entry.context
    return {
        "schema_name": entry.schema_name,
        "table_name": entry.table_name,
        "action": entry.action.value,
        "row_pk": entry.row_pk,
        "old_values": entry.old_values,
        "new_values": entry.new_values,
        "client_query": ctx.client_query,
        "session_user_name": ctx.session_user_name,
        "current_user_name": ctx.effective_user_name,
        "action_tstamp_tx": ctx.action_tstamp_tx,
        "action_tstamp_stm": ctx.action_tstamp_stm,
        "action_tstamp_clk": ctx.action_tstamp_clk or datetime.now(timezone.utc),
        "transaction_id": ctx.transaction_id,
        "application_name": ctx.application_name,
        "application_user_name": ctx.application_user_name,
        "client_addr": ctx.client_addr,
        "client_port": ctx.client_port,
    }


def entry_from_row(row: AuditLog) -> AuditEntry:
    context = AuditContext(
        session_user_name=row.session_user_name,
        current_user_name=row.current_user_name,
        transaction_id=row.transaction_id,
        action_tstamp_tx=row.action_tstamp_tx,
        action_tstamp_stm=row.action_tstamp_stm,
        action_tstamp_clk=row.action_tstamp_clk,
        client_query=row.client_query,
        client_addr=row.client_addr,
        client_port=row.client_port,
        application_name=row.application_name,
        application_user_name=row.application_user_name,
    )
    return AuditEntry(
        id=row.id,
        schema_name=row.schema_name,
        table_name=row.table_name,
        action=AuditAction(row.action),
        row_pk=row.row_pk,
        old_values=row.old_values,
        new_values=row.new_values,
        context=context,
    )


class ConnectionAuditLog:
    """
    Sink SQL lié à la connexion de la mutation : l'entrée est écrite dans la
    même transaction et disparaît avec elle en cas de rollback.
    """

    def __init__(self, connection: Connection):
        self._connection = connection

    def append(self, entry: AuditEntry) -> AuditEntry:
        stmt = (
            insert(AuditLog.__table__)
            .values(**entry_to_row(entry))
            .execution_options(**{INTERNAL_EXECUTION_OPTION: True})
        )
        result = self._connection.execute(stmt)
        return entry.model_copy(update={"id": result.inserted_primary_key[0]})


class InMemoryAuditLog:
    """Sink en mémoire (tests, intégrations sans base). Ids croissants."""

    def __init__(self):
        self._lock = Lock()
        self._ids = itertools.count(1)
        self._entries: List[AuditEntry] = []

    def append(self, entry: AuditEntry) -> AuditEntry:
        with self._lock:
            stored = entry.model_copy(update={"id": next(self._ids)})
            self._entries.append(stored)
        return stored

    @property
    def entries(self) -> Tuple[AuditEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def get_recent(db: Session, limit: int = 20) -> List[AuditEntry]:
    """
    Retourne les dernières entrées d'audit (ordre décroissant d'id).
    """
    stmt = select(AuditLog).order_by(AuditLog.id.desc()).limit(limit)
    result = db.execute(stmt)
    return [entry_from_row(row) for row in result.scalars().all()]
