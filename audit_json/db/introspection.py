# audit_json/db/introspection.py
"""Découverte de la clé d'identité (clé primaire) des tables à auditer."""

from typing import List, Optional

from sqlalchemy import MetaData, Table, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError

from audit_json.core.config import default_schema
from audit_json.schemas.audit_entry import TableRef


def table_ref_for(table: Table) -> TableRef:
    return TableRef(schema_name=table.schema or default_schema(), table_name=table.name)


def _sqlalchemy_schema(ref: TableRef) -> Optional[str]:
    # Le schéma par défaut correspond à Table.schema = None côté SQLAlchemy
    return None if ref.schema_name == default_schema() else ref.schema_name


class MetadataKeyResolver:
    """Clé primaire telle que déclarée dans une MetaData SQLAlchemy."""

    def __init__(self, metadata: MetaData):
        self.metadata = metadata

    def find_table(self, ref: TableRef) -> Optional[Table]:
        schema = _sqlalchemy_schema(ref)
        key = f"{schema}.{ref.table_name}" if schema else ref.table_name
        table = self.metadata.tables.get(key)
        if table is None and schema is None:
            table = self.metadata.tables.get(ref.qualified)
        return table

    def __call__(self, ref: TableRef) -> List[str]:
        table = self.find_table(ref)
        if table is None:
            return []
        return [col.name for col in table.primary_key.columns]


class InspectorKeyResolver:
    """Clé primaire lue dans le catalogue de la base (pg_index, sqlite_master...)."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def __call__(self, ref: TableRef) -> List[str]:
        # Nouvel Inspector à chaque appel : pas de cache périmé après un ALTER
        inspector = inspect(self.engine)
        try:
            pk = inspector.get_pk_constraint(ref.table_name, schema=_sqlalchemy_schema(ref))
        except NoSuchTableError:
            return []
        return list(pk.get("constrained_columns") or [])
