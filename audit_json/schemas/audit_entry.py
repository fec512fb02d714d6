# audit_json/schemas/audit_entry.py
from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from audit_json.core.config import default_schema


class AuditAction(str, enum.Enum):
    # Codes historiques de la colonne audit_log.action
    INSERT = "I"
    UPDATE = "U"
    DELETE = "D"
    TRUNCATE = "T"


class Granularity(str, enum.Enum):
    ROW = "row"
    STATEMENT = "statement"


class TableRef(BaseModel):
    """Identifiant d'une table auditée (schéma + nom)."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    table_name: str

    @classmethod
    def parse(cls, value: str) -> "TableRef":
        """Accepte "schema.table" ou "table" (schéma par défaut)."""
        value = (value or "").strip()
        if not value:
            raise ValueError("table name must not be empty")
        if "." in value:
            schema_name, table_name = value.split(".", 1)
        else:
            schema_name, table_name = default_schema(), value
        return cls(schema_name=schema_name, table_name=table_name)

    @property
    def qualified(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    def __str__(self) -> str:
        return self.qualified


class AuditContext(BaseModel):
    """
    Métadonnées ambiantes fournies par l'hôte à chaque mutation
    (utilisateurs, transaction, horodatages, origine client).
    """

    model_config = ConfigDict(frozen=True)

    session_user_name: str = "anonymous"
    current_user_name: Optional[str] = None
    transaction_id: int
    action_tstamp_tx: datetime
    action_tstamp_stm: datetime
    # Renseigné par le CaptureHook au moment de la capture
    action_tstamp_clk: Optional[datetime] = None
    client_query: Optional[str] = None
    client_addr: Optional[str] = None
    client_port: Optional[int] = None
    application_name: Optional[str] = None
    application_user_name: Optional[str] = None

    @property
    def effective_user_name(self) -> str:
        return self.current_user_name or self.session_user_name


class TableAuditConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    table: TableRef
    pk_columns: Tuple[str, ...]
    capture_query_text: bool = True
    ignored_fields: Tuple[str, ...] = ()

    @field_validator("pk_columns")
    @classmethod
    def _pk_not_empty(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if not value:
            raise ValueError("pk_columns must not be empty")
        return value


class AuditEntry(BaseModel):
    """Entrée d'historique, écrite une seule fois."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[int] = None
    schema_name: str
    table_name: str
    action: AuditAction
    row_pk: Optional[Dict[str, Any]] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    context: AuditContext


class TableAuditConfigRead(BaseModel):
    table: str
    pk_columns: List[str]
    capture_query_text: bool
    ignored_fields: List[str]

    @classmethod
    def from_config(cls, config: TableAuditConfig) -> "TableAuditConfigRead":
        return cls(
            table=config.table.qualified,
            pk_columns=list(config.pk_columns),
            capture_query_text=config.capture_query_text,
            ignored_fields=list(config.ignored_fields),
        )


class AttachRequest(BaseModel):
    capture_query_text: bool = True
    ignored_fields: List[str] = Field(default_factory=list)
