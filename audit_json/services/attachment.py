# audit_json/services/attachment.py
"""
Registre des tables auditées (table -> TableAuditConfig).

Les écritures (attach / detach) sont sérialisées par un verrou et remplacent
le dictionnaire entier (copy-on-write) : une lecture concurrente voit soit
l'ancienne configuration complète, soit la nouvelle.
"""

from __future__ import annotations

from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from audit_json.core.logger import attach_logger as logger
from audit_json.errors import ConfigurationError, PreconditionError
from audit_json.schemas.audit_entry import TableAuditConfig, TableRef

# Fournit les colonnes de la clé d'identité (clé primaire) d'une table
KeyResolver = Callable[[TableRef], Sequence[str]]

TableLike = Union[TableRef, str]


def as_table_ref(table: TableLike) -> TableRef:
    if isinstance(table, TableRef):
        return table
    return TableRef.parse(table)


class AttachmentManager:
    def __init__(self, key_resolver: KeyResolver):
        self._key_resolver = key_resolver
        self._configs: Dict[TableRef, TableAuditConfig] = {}
        self._write_lock = Lock()

    def attach(
        self,
        table: TableLike,
        capture_query_text: bool = True,
        ignored_fields: Optional[Iterable[str]] = None,
    ) -> TableAuditConfig:
        """
        Active l'audit sur une table. Relancer attach remplace la configuration
        existante. Lève PreconditionError si la table n'a pas de clé primaire
        (la configuration précédente reste alors en place).
        """
        ref = as_table_ref(table)
        if isinstance(ignored_fields, str):
            ignored_fields = (ignored_fields,)
        pk_columns = tuple(self._key_resolver(ref) or ())
        if not pk_columns:
            logger.warning("attach refused: no primary key", extra={"table": ref.qualified})
            raise PreconditionError(f"table {ref.qualified} must have a primary key to be audited")

        config = TableAuditConfig(
            table=ref,
            pk_columns=pk_columns,
            capture_query_text=capture_query_text,
            ignored_fields=tuple(dict.fromkeys(ignored_fields or ())),
        )

        with self._write_lock:
            configs = dict(self._configs)
            replaced = ref in configs
            configs[ref] = config
            self._configs = configs

        logger.info(
            "table attached",
            extra={
                "table": ref.qualified,
                "pk_columns": list(config.pk_columns),
                "capture_query_text": config.capture_query_text,
                "ignored_fields": list(config.ignored_fields),
                "replaced": replaced,
            },
        )
        return config

    def detach(self, table: TableLike) -> bool:
        """Désactive l'audit. Idempotent : retourne False si la table n'était pas attachée."""
        ref = as_table_ref(table)
        with self._write_lock:
            if ref not in self._configs:
                return False
            configs = dict(self._configs)
            del configs[ref]
            self._configs = configs

        logger.info("table detached", extra={"table": ref.qualified})
        return True

    def get(self, table: TableLike) -> Optional[TableAuditConfig]:
        return self._configs.get(as_table_ref(table))

    def require(self, table: TableLike) -> TableAuditConfig:
        config = self.get(table)
        if config is None:
            raise ConfigurationError(f"table {as_table_ref(table).qualified} is not attached for audit")
        return config

    def is_attached(self, table: TableLike) -> bool:
        return self.get(table) is not None

    def attached(self) -> List[TableAuditConfig]:
        configs = self._configs
        return [configs[ref] for ref in sorted(configs, key=lambda r: r.qualified)]
