# audit_json/services/record_builder.py
"""
Construction d'une entrée d'audit à partir d'une mutation.

Fonction pure : pas d'I/O, pas d'état. Retourne None quand un UPDATE ne
modifie que des colonnes ignorées (suppression, ce n'est pas une erreur).
"""

import copy
from typing import Any, Mapping, Optional

from audit_json.diff import Record, extract, key_filter, value_diff
from audit_json.errors import ConfigurationError, MalformedInputError
from audit_json.schemas.audit_entry import (
    AuditAction,
    AuditContext,
    AuditEntry,
    Granularity,
    TableAuditConfig,
)

# Combinaisons action/granularité gérées
_SUPPORTED = {
    (AuditAction.INSERT, Granularity.ROW),
    (AuditAction.UPDATE, Granularity.ROW),
    (AuditAction.DELETE, Granularity.ROW),
    (AuditAction.TRUNCATE, Granularity.STATEMENT),
}


def _require(snapshot: Optional[Mapping[str, Any]], label: str, action: AuditAction) -> Mapping[str, Any]:
    if snapshot is None:
        raise MalformedInputError(f"{action.name} capture requires the {label} row")
    return snapshot


def _changed_fields(
    before: Mapping[str, Any], after: Mapping[str, Any], ignored
) -> Optional[tuple]:
    changed_after = key_filter(value_diff(after, before), ignored)
    changed_before = key_filter(value_diff(before, after), ignored)

    # Un objet imbriqué qui perd une clé n'apparaît que côté "before" :
    # on complète avec un objet vide pour garder le même ensemble de champs.
    for name in changed_before:
        changed_after.setdefault(name, {})
    for name in changed_after:
        changed_before.setdefault(name, {})

    if not changed_after:
        return None
    return {k: changed_before[k] for k in changed_after}, changed_after


def build_entry(
    action: AuditAction,
    granularity: Granularity,
    config: TableAuditConfig,
    context: AuditContext,
    before: Optional[Mapping[str, Any]] = None,
    after: Optional[Mapping[str, Any]] = None,
) -> Optional[AuditEntry]:
    """
    Assemble une AuditEntry (sans id : c'est le sink qui l'attribue).

    - INSERT : new_values = ligne complète moins les colonnes ignorées
    - UPDATE : old/new = seulement les champs modifiés ; None si rien d'effectif
    - DELETE : old_values = ligne complète moins les colonnes ignorées
    - TRUNCATE : ni clé, ni valeurs (une entrée par instruction)
    """
    if (action, granularity) not in _SUPPORTED:
        raise ConfigurationError(
            f"capture wired for unhandled case: {action.name}, {granularity.value}"
        )

    ignored = config.ignored_fields
    keys = config.pk_columns
    row_pk: Optional[Record] = None
    old_values: Optional[Record] = None
    new_values: Optional[Record] = None

    if action is AuditAction.INSERT:
        after = _require(after, "new", action)
        new_values = key_filter(after, ignored)
        row_pk = extract(after, keys)
    elif action is AuditAction.UPDATE:
        before = _require(before, "old", action)
        after = _require(after, "new", action)
        changed = _changed_fields(before, after, ignored)
        if changed is None:
            return None
        old_values, new_values = changed
        row_pk = extract(before, keys)
    elif action is AuditAction.DELETE:
        before = _require(before, "old", action)
        old_values = key_filter(before, ignored)
        row_pk = extract(before, keys)

    if not config.capture_query_text and context.client_query is not None:
        context = context.model_copy(update={"client_query": None})

    # Copies profondes : l'entrée ne partage aucun objet imbriqué avec les snapshots
    row_pk, old_values, new_values = copy.deepcopy((row_pk, old_values, new_values))

    return AuditEntry(
        schema_name=config.table.schema_name,
        table_name=config.table.table_name,
        action=action,
        row_pk=row_pk,
        old_values=old_values,
        new_values=new_values,
        context=context,
    )
