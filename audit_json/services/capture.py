# audit_json/services/capture.py
"""
Point d'entrée appelé par l'hôte à chaque mutation d'une table attachée.

Idle -> Building -> Emitting | Suppressed | Failed -> Idle : aucun état n'est
conservé entre deux appels. Toute erreur est propagée pour faire échouer la
mutation (fail-closed) : un câblage cassé ne doit pas perdre d'audit en silence.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from audit_json.core.logger import capture_logger as logger
from audit_json.crud.audit_log import AuditLogSink
from audit_json.errors import ConfigurationError
from audit_json.schemas.audit_entry import AuditAction, AuditContext, AuditEntry, Granularity, TableRef
from audit_json.services.attachment import AttachmentManager
from audit_json.services.record_builder import build_entry
from audit_json.telemetry.metrics import record_capture


@dataclass(frozen=True)
class MutationEvent:
    """Une mutation telle que fournie par le moteur de stockage."""

    table: TableRef
    action: AuditAction
    granularity: Granularity
    context: AuditContext
    old_row: Optional[Mapping[str, Any]] = None
    new_row: Optional[Mapping[str, Any]] = None


class CaptureHook:
    def __init__(self, manager: AttachmentManager, sink: Optional[AuditLogSink] = None):
        self.manager = manager
        self.sink = sink

    def capture(self, event: MutationEvent, sink: Optional[AuditLogSink] = None) -> Optional[AuditEntry]:
        """
        Capture une mutation. Retourne l'entrée écrite, ou None si l'UPDATE
        a été supprimé (seules des colonnes ignorées ont changé).
        """
        log_extra = {
            "table": event.table.qualified,
            "action": event.action.name,
            "granularity": event.granularity.value,
            "transaction_id": event.context.transaction_id,
        }
        try:
            target = sink if sink is not None else self.sink
            if target is None:
                raise ConfigurationError("no audit log sink configured for capture")

            config = self.manager.require(event.table)
            context = event.context.model_copy(
                update={"action_tstamp_clk": datetime.now(timezone.utc)}
            )
            entry = build_entry(
                event.action,
                event.granularity,
                config,
                context,
                before=event.old_row,
                after=event.new_row,
            )
            if entry is None:
                record_capture(event.action, "suppressed")
                logger.debug("capture suppressed: only ignored fields changed", extra=log_extra)
                return None

            stored = target.append(entry)
        except Exception:
            record_capture(event.action, "failed")
            logger.exception("capture failed", extra=log_extra)
            raise

        record_capture(event.action, "emitted")
        logger.debug("audit entry emitted", extra={**log_extra, "audit_id": stored.id})
        return stored
