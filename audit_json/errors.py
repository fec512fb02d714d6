# audit_json/errors.py


class AuditError(Exception):
    """Erreur de base du moteur d'audit."""


class PreconditionError(AuditError):
    """La table ne peut pas être attachée (pas de clé d'identité)."""


class ConfigurationError(AuditError):
    """
    Câblage d'audit incohérent (table non attachée, combinaison
    action/granularité non gérée, pas de sink).
    Fatale : doit faire échouer la mutation qui l'a déclenchée.
    """


class MalformedInputError(AuditError):
    """Entrée qui n'est pas un Record bien formé."""
