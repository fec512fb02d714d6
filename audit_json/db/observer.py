# audit_json/db/observer.py
"""
Branchement du CaptureHook sur SQLAlchemy (équivalent des triggers AFTER).

- INSERT / UPDATE / DELETE ORM : événements mapper, exécutés pendant le flush,
  dans la transaction de la mutation. Les lignes avant/après sont relues en
  base (SELECT sur la clé primaire) pour avoir la ligne complète.
- DELETE sans WHERE (Core ou session.execute(delete(Model))) : une entrée
  TRUNCATE par instruction.
- Contexte (transaction, horodatages, requête, client) posé dans
  Connection.info par les événements moteur, complété par set_audit_context().

Les UPDATE / DELETE en masse avec WHERE ne passent pas par les événements
mapper et ne sont pas capturés.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from fastapi.encoders import jsonable_encoder
from sqlalchemy import Table, and_, event, inspect, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Mapper, Session, object_session
from sqlalchemy.sql.dml import Delete

from audit_json.core.logger import logger
from audit_json.crud.audit_log import INTERNAL_EXECUTION_OPTION, AuditLogSink, ConnectionAuditLog
from audit_json.db.introspection import table_ref_for
from audit_json.diff import Record
from audit_json.models.audit_log import AuditLog
from audit_json.schemas.audit_entry import AuditAction, AuditContext, Granularity, TableRef
from audit_json.services.capture import CaptureHook, MutationEvent

TX_KEY = "audit_json.tx"
STMT_KEY = "audit_json.statement"
CLIENT_KEY = "audit_json.client"
PENDING_KEY = "audit_json.pending"

# Identifiant de transaction : unique quand il est associé à action_tstamp_tx
_transaction_ids = itertools.count(1)

_CLIENT_FIELDS = (
    "session_user",
    "current_user",
    "application_name",
    "application_user_name",
    "client_addr",
    "client_port",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def set_audit_context(target: Any, **values: Any) -> None:
    """
    Renseigne l'identité de l'appelant sur une Session ou une Connection :
    session_user, current_user, application_name, application_user_name,
    client_addr, client_port.

    Sur une Session, l'info est recopiée sur la connexion au début de chaque
    transaction (after_begin) : à appeler avant la première requête.
    """
    unknown = set(values) - set(_CLIENT_FIELDS)
    if unknown:
        raise TypeError(f"unknown audit context fields: {sorted(unknown)}")
    client = dict(target.info.get(CLIENT_KEY) or {})
    client.update({k: v for k, v in values.items() if v is not None})
    target.info[CLIENT_KEY] = client


def to_record(row: Any, table: Table) -> Record:
    """Ligne -> Record JSON (dates ISO, UUID en texte...), comme to_jsonb()."""
    return jsonable_encoder(
        {col.name: row[col] for col in table.columns},
        # bytea rendu comme sous Postgres : "\x" + hexadécimal
        custom_encoder={bytes: lambda value: "\\x" + value.hex()},
    )


SinkFactory = Callable[[Connection], AuditLogSink]


class SqlAlchemyObserver:
    def __init__(
        self,
        hook: CaptureHook,
        engine: Engine,
        base: Any,
        session_factory: Any = None,
        sink_factory: SinkFactory = ConnectionAuditLog,
    ):
        self.hook = hook
        self.engine = engine
        self.base = base
        self.session_factory = session_factory or Session
        self.sink_factory = sink_factory
        self._listeners: List[Tuple[Any, str, Callable, Dict[str, Any]]] = []

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------
    def _registrations(self) -> List[Tuple[Any, str, Callable, Dict[str, Any]]]:
        mapper_kw = {"propagate": True}
        return [
            (self.engine, "begin", self._on_begin, {}),
            (self.engine, "before_cursor_execute", self._on_before_cursor_execute, {}),
            (self.engine, "after_execute", self._on_after_execute, {}),
            (self.engine, "checkin", self._on_checkin, {}),
            (self.session_factory, "after_begin", self._on_session_begin, {}),
            (self.session_factory, "after_flush_postexec", self._clear_pending, {}),
            (self.session_factory, "after_soft_rollback", self._clear_pending, {}),
            (self.base, "after_insert", self._after_insert, mapper_kw),
            (self.base, "before_update", self._before_update, mapper_kw),
            (self.base, "after_update", self._after_update, mapper_kw),
            (self.base, "before_delete", self._before_delete, mapper_kw),
            (self.base, "after_delete", self._after_delete, mapper_kw),
        ]

    @property
    def installed(self) -> bool:
        return bool(self._listeners)

    def install(self) -> "SqlAlchemyObserver":
        if self._listeners:
            return self
        for target, identifier, fn, kw in self._registrations():
            event.listen(target, identifier, fn, **kw)
            self._listeners.append((target, identifier, fn, kw))
        logger.info("audit observer installed", extra={"engine": str(self.engine.url)})
        return self

    def uninstall(self) -> None:
        while self._listeners:
            target, identifier, fn, _kw = self._listeners.pop()
            event.remove(target, identifier, fn)
        logger.info("audit observer uninstalled", extra={"engine": str(self.engine.url)})

    # ------------------------------------------------------------------
    # Contexte ambiant (Connection.info)
    # ------------------------------------------------------------------
    def _on_begin(self, conn: Connection) -> None:
        conn.info[TX_KEY] = {"id": next(_transaction_ids), "started_at": _now()}
        conn.info.pop(STMT_KEY, None)

    def _on_before_cursor_execute(self, conn, cursor, statement, parameters, context, executemany) -> None:
        if context is not None and context.execution_options.get(INTERNAL_EXECUTION_OPTION):
            return
        conn.info[STMT_KEY] = {"started_at": _now(), "query": statement}

    def _on_checkin(self, dbapi_connection, connection_record) -> None:
        # Connection.info survit au retour dans le pool : on ne garde rien
        for key in (TX_KEY, STMT_KEY, CLIENT_KEY):
            connection_record.info.pop(key, None)

    def _on_session_begin(self, session: Session, transaction, connection: Connection) -> None:
        client = session.info.get(CLIENT_KEY)
        if client:
            connection.info[CLIENT_KEY] = dict(client)

    def build_context(self, connection: Connection, session: Optional[Session] = None) -> AuditContext:
        info = connection.info
        tx = info.get(TX_KEY)
        if tx is None:
            tx = {"id": next(_transaction_ids), "started_at": _now()}
            info[TX_KEY] = tx
        stmt = info.get(STMT_KEY) or {}

        client: Dict[str, Any] = dict(info.get(CLIENT_KEY) or {})
        if session is not None:
            client.update(session.info.get(CLIENT_KEY) or {})

        return AuditContext(
            session_user_name=client.get("session_user") or connection.engine.url.username or "anonymous",
            current_user_name=client.get("current_user"),
            transaction_id=tx["id"],
            action_tstamp_tx=tx["started_at"],
            action_tstamp_stm=stmt.get("started_at") or _now(),
            client_query=stmt.get("query"),
            client_addr=client.get("client_addr"),
            client_port=client.get("client_port"),
            application_name=client.get("application_name"),
            application_user_name=client.get("application_user_name"),
        )

    # ------------------------------------------------------------------
    # Tables capturées
    # ------------------------------------------------------------------
    def _attached_ref(self, table: Any) -> Optional[TableRef]:
        if not isinstance(table, Table) or table.name == AuditLog.__tablename__:
            return None
        ref = table_ref_for(table)
        return ref if self.hook.manager.is_attached(ref) else None

    @staticmethod
    def _mapped_table(mapper: Mapper) -> Any:
        # Héritage : c'est la table de base (clé primaire) qui est auditée
        return mapper.base_mapper.local_table

    def _snapshot(self, connection: Connection, table: Table, mapper: Mapper, pk_values: Sequence[Any]) -> Optional[Record]:
        criteria = [col == value for col, value in zip(mapper.primary_key, pk_values)]
        stmt = (
            select(table)
            .where(and_(*criteria))
            .execution_options(**{INTERNAL_EXECUTION_OPTION: True})
        )
        row = connection.execute(stmt).mappings().first()
        return to_record(row, table) if row is not None else None

    @staticmethod
    def _clear_pending(session: Session, *_args: Any) -> None:
        # Snapshots "before" orphelins quand le flush échoue avant le after_*
        session.info.pop(PENDING_KEY, None)

    @staticmethod
    def _pending(target: Any) -> Dict[int, Record]:
        session = object_session(target)
        return session.info.setdefault(PENDING_KEY, {})

    def _emit(
        self,
        connection: Connection,
        ref: TableRef,
        action: AuditAction,
        granularity: Granularity,
        session: Optional[Session] = None,
        old_row: Optional[Record] = None,
        new_row: Optional[Record] = None,
    ) -> None:
        mutation = MutationEvent(
            table=ref,
            action=action,
            granularity=granularity,
            context=self.build_context(connection, session),
            old_row=old_row,
            new_row=new_row,
        )
        self.hook.capture(mutation, self.sink_factory(connection))

    # ------------------------------------------------------------------
    # Événements mapper (niveau ligne)
    # ------------------------------------------------------------------
    def _after_insert(self, mapper: Mapper, connection: Connection, target: Any) -> None:
        table = self._mapped_table(mapper)
        ref = self._attached_ref(table)
        if ref is None:
            return
        new_row = self._snapshot(connection, table, mapper, mapper.primary_key_from_instance(target))
        self._emit(connection, ref, AuditAction.INSERT, Granularity.ROW, object_session(target), new_row=new_row)

    def _before_update(self, mapper: Mapper, connection: Connection, target: Any) -> None:
        table = self._mapped_table(mapper)
        if self._attached_ref(table) is None:
            return
        # identity = clé persistée (avant une éventuelle modification de la PK)
        old_row = self._snapshot(connection, table, mapper, inspect(target).identity)
        self._pending(target)[id(target)] = old_row

    def _after_update(self, mapper: Mapper, connection: Connection, target: Any) -> None:
        pending = self._pending(target)
        if id(target) not in pending:
            return
        old_row = pending.pop(id(target))
        table = self._mapped_table(mapper)
        ref = self._attached_ref(table)
        if ref is None:
            return
        new_row = self._snapshot(connection, table, mapper, mapper.primary_key_from_instance(target))
        self._emit(
            connection, ref, AuditAction.UPDATE, Granularity.ROW, object_session(target),
            old_row=old_row, new_row=new_row,
        )

    def _before_delete(self, mapper: Mapper, connection: Connection, target: Any) -> None:
        table = self._mapped_table(mapper)
        if self._attached_ref(table) is None:
            return
        self._pending(target)[id(target)] = self._snapshot(connection, table, mapper, inspect(target).identity)

    def _after_delete(self, mapper: Mapper, connection: Connection, target: Any) -> None:
        pending = self._pending(target)
        if id(target) not in pending:
            return
        old_row = pending.pop(id(target))
        ref = self._attached_ref(self._mapped_table(mapper))
        if ref is None:
            return
        self._emit(connection, ref, AuditAction.DELETE, Granularity.ROW, object_session(target), old_row=old_row)

    # ------------------------------------------------------------------
    # Niveau instruction : DELETE sans WHERE == TRUNCATE
    # ------------------------------------------------------------------
    def _on_after_execute(self, conn, clauseelement, multiparams, params, execution_options, result) -> None:
        if not isinstance(clauseelement, Delete) or clauseelement.whereclause is not None:
            return
        if (execution_options or {}).get(INTERNAL_EXECUTION_OPTION):
            return
        ref = self._attached_ref(clauseelement.table)
        if ref is None:
            return
        self._emit(conn, ref, AuditAction.TRUNCATE, Granularity.STATEMENT)
