# tests/test_record_builder.py

import pytest

from audit_json.errors import ConfigurationError, MalformedInputError
from audit_json.schemas.audit_entry import AuditAction, Granularity, TableAuditConfig, TableRef
from audit_json.services.record_builder import build_entry

CUSTOMERS = TableRef(schema_name="public", table_name="customers")


def _config(**kwargs) -> TableAuditConfig:
    kwargs.setdefault("pk_columns", ("id",))
    return TableAuditConfig(table=CUSTOMERS, **kwargs)


def test_insert_scenario_a(audit_context):
    # Scénario A : colonne ignorée retirée de new_values
    entry = build_entry(
        AuditAction.INSERT,
        Granularity.ROW,
        _config(ignored_fields=("secret",)),
        audit_context,
        after={"id": 1, "name": "x", "secret": "s"},
    )
    assert entry.action is AuditAction.INSERT
    assert entry.row_pk == {"id": 1}
    assert entry.old_values is None
    assert entry.new_values == {"id": 1, "name": "x"}
    assert entry.schema_name == "public"
    assert entry.table_name == "customers"
    assert entry.id is None


def test_update_scenario_b(audit_context):
    entry = build_entry(
        AuditAction.UPDATE,
        Granularity.ROW,
        _config(),
        audit_context,
        before={"id": 1, "name": "x"},
        after={"id": 1, "name": "y"},
    )
    assert entry.action is AuditAction.UPDATE
    assert entry.row_pk == {"id": 1}
    assert entry.old_values == {"name": "x"}
    assert entry.new_values == {"name": "y"}


def test_update_scenario_c_only_ignored_field_changed_is_suppressed(audit_context):
    entry = build_entry(
        AuditAction.UPDATE,
        Granularity.ROW,
        _config(ignored_fields=("updated_at",)),
        audit_context,
        before={"id": 1, "name": "x", "updated_at": "2026-01-01"},
        after={"id": 1, "name": "x", "updated_at": "2026-01-02"},
    )
    assert entry is None


def test_update_without_any_change_is_suppressed(audit_context):
    row = {"id": 1, "name": "x", "profile": {"a": [1, 2]}}
    assert build_entry(AuditAction.UPDATE, Granularity.ROW, _config(), audit_context, before=row, after=dict(row)) is None


def test_update_ignored_fields_are_stripped_from_both_sides(audit_context):
    entry = build_entry(
        AuditAction.UPDATE,
        Granularity.ROW,
        _config(ignored_fields=("updated_at",)),
        audit_context,
        before={"id": 1, "name": "x", "updated_at": "2026-01-01"},
        after={"id": 1, "name": "y", "updated_at": "2026-01-02"},
    )
    assert entry.old_values == {"name": "x"}
    assert entry.new_values == {"name": "y"}


def test_update_identity_comes_from_the_old_row(audit_context):
    entry = build_entry(
        AuditAction.UPDATE,
        Granularity.ROW,
        _config(),
        audit_context,
        before={"id": 1, "name": "x"},
        after={"id": 2, "name": "x"},
    )
    assert entry.row_pk == {"id": 1}
    assert entry.old_values == {"id": 1}
    assert entry.new_values == {"id": 2}


def test_update_nested_partial_diff(audit_context):
    entry = build_entry(
        AuditAction.UPDATE,
        Granularity.ROW,
        _config(),
        audit_context,
        before={"id": 1, "profile": {"city": "Lyon", "zip": "69001"}},
        after={"id": 1, "profile": {"city": "Lyon", "zip": "69002"}},
    )
    assert entry.old_values == {"profile": {"zip": "69001"}}
    assert entry.new_values == {"profile": {"zip": "69002"}}


def test_update_nested_key_removal_keeps_same_field_set(audit_context):
    entry = build_entry(
        AuditAction.UPDATE,
        Granularity.ROW,
        _config(),
        audit_context,
        before={"id": 1, "profile": {"city": "Lyon", "zip": "69001"}},
        after={"id": 1, "profile": {"city": "Lyon"}},
    )
    assert entry is not None
    assert set(entry.old_values) == set(entry.new_values) == {"profile"}
    assert entry.old_values == {"profile": {"zip": "69001"}}
    assert entry.new_values == {"profile": {}}


def test_delete_scenario_d(audit_context):
    entry = build_entry(
        AuditAction.DELETE,
        Granularity.ROW,
        _config(),
        audit_context,
        before={"id": 1, "name": "x"},
    )
    assert entry.action is AuditAction.DELETE
    assert entry.row_pk == {"id": 1}
    assert entry.old_values == {"id": 1, "name": "x"}
    assert entry.new_values is None


def test_delete_strips_ignored_fields(audit_context):
    entry = build_entry(
        AuditAction.DELETE,
        Granularity.ROW,
        _config(ignored_fields=("secret",)),
        audit_context,
        before={"id": 1, "name": "x", "secret": "s"},
    )
    assert entry.old_values == {"id": 1, "name": "x"}


def test_truncate_has_no_row_data(audit_context):
    entry = build_entry(AuditAction.TRUNCATE, Granularity.STATEMENT, _config(), audit_context)
    assert entry.action is AuditAction.TRUNCATE
    assert entry.row_pk is None
    assert entry.old_values is None
    assert entry.new_values is None


def test_composite_identity_key(audit_context):
    config = TableAuditConfig(
        table=TableRef(schema_name="public", table_name="order_lines"),
        pk_columns=("order_id", "line_no"),
    )
    entry = build_entry(
        AuditAction.DELETE,
        Granularity.ROW,
        config,
        audit_context,
        before={"line_no": 2, "order_id": 10, "sku": "A-1"},
    )
    assert entry.row_pk == {"order_id": 10, "line_no": 2}
    assert list(entry.row_pk) == ["order_id", "line_no"]


def test_query_text_is_dropped_when_not_captured(audit_context):
    entry = build_entry(
        AuditAction.DELETE,
        Granularity.ROW,
        _config(capture_query_text=False),
        audit_context,
        before={"id": 1},
    )
    assert entry.context.client_query is None
    # Le reste du contexte est conservé
    assert entry.context.session_user_name == "alice"
    assert entry.context.client_addr == "203.0.113.10"


def test_query_text_is_kept_by_default(audit_context):
    entry = build_entry(AuditAction.DELETE, Granularity.ROW, _config(), audit_context, before={"id": 1})
    assert entry.context.client_query == audit_context.client_query


@pytest.mark.parametrize(
    "action, granularity",
    [
        (AuditAction.INSERT, Granularity.STATEMENT),
        (AuditAction.UPDATE, Granularity.STATEMENT),
        (AuditAction.DELETE, Granularity.STATEMENT),
        (AuditAction.TRUNCATE, Granularity.ROW),
    ],
)
def test_unsupported_action_granularity_is_a_configuration_error(audit_context, action, granularity):
    with pytest.raises(ConfigurationError):
        build_entry(action, granularity, _config(), audit_context, before={"id": 1}, after={"id": 1})


def test_missing_snapshot_is_malformed_input(audit_context):
    with pytest.raises(MalformedInputError):
        build_entry(AuditAction.INSERT, Granularity.ROW, _config(), audit_context)
    with pytest.raises(MalformedInputError):
        build_entry(AuditAction.UPDATE, Granularity.ROW, _config(), audit_context, after={"id": 1})


def test_entries_are_immutable(audit_context):
    entry = build_entry(AuditAction.DELETE, Granularity.ROW, _config(), audit_context, before={"id": 1})
    with pytest.raises(Exception):
        entry.action = AuditAction.INSERT


def test_update_from_number_to_boolean_is_logged(audit_context):
    entry = build_entry(
        AuditAction.UPDATE,
        Granularity.ROW,
        _config(),
        audit_context,
        before={"id": 1, "profile": {"active": 1}},
        after={"id": 1, "profile": {"active": True}},
    )
    assert entry is not None
    assert entry.old_values == {"profile": {"active": 1}}
    assert entry.new_values == {"profile": {"active": True}}


def test_entry_does_not_share_nested_values_with_the_snapshot(audit_context):
    before = {"id": 1, "profile": {"city": "Lyon", "tags": ["a"]}}
    entry = build_entry(AuditAction.DELETE, Granularity.ROW, _config(), audit_context, before=before)

    before["profile"]["city"] = "Paris"
    before["profile"]["tags"].append("b")
    assert entry.old_values == {"id": 1, "profile": {"city": "Lyon", "tags": ["a"]}}
