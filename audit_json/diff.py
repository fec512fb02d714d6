# audit_json/diff.py
"""
Soustraction structurelle de Records (équivalent des opérateurs JSONB "-").

- value_diff(left, right) : les champs de `left` qui ne sont pas retrouvés
  à l'identique dans `right` (récursif sur les objets imbriqués).
- key_filter(record, keys) : retire une liste de clés, quelle que soit la valeur.
- extract(record, keys)    : projection sur les clés d'identité.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from audit_json.errors import MalformedInputError

Record = Dict[str, Any]


def _check_record(value: Any, label: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise MalformedInputError(
            f"{label} must be a mapping, got {type(value).__name__}"
        )
    for key in value:
        if not isinstance(key, str):
            raise MalformedInputError(
                f"{label} has a non-string field name: {key!r}"
            )
    return value


def _same_json(left: Any, right: Any) -> bool:
    """Égalité au sens JSON : true et 1 (ou false et 0) sont des valeurs différentes."""
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return left.keys() == right.keys() and all(_same_json(v, right[k]) for k, v in left.items())
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(_same_json(a, b) for a, b in zip(left, right))
    return left == right


def value_diff(left: Mapping[str, Any], right: Optional[Mapping[str, Any]]) -> Record:
    """
    Retourne le sous-ensemble de `left` qui diffère de `right`.

    Asymétrique : les champs présents seulement dans `right` sont ignorés.
    Si les deux valeurs sont des objets, on descend récursivement et le champ
    n'est gardé que si le diff imbriqué n'est pas vide. Les listes sont
    comparées comme des valeurs atomiques.
    """
    _check_record(left, "left")
    if right is None:
        return dict(left)
    _check_record(right, "right")

    result: Record = {}
    for key, value in left.items():
        if key not in right:
            result[key] = value
            continue

        other = right[key]
        if isinstance(value, Mapping) and isinstance(other, Mapping):
            nested = value_diff(value, other)
            if nested:
                result[key] = nested
        elif not _same_json(value, other):
            result[key] = value
    return result


def key_filter(record: Mapping[str, Any], keys: Iterable[str]) -> Record:
    """Supprime les clés nommées (les clés inconnues sont ignorées sans erreur)."""
    _check_record(record, "record")
    excluded = set(keys)
    if not excluded:
        return dict(record)
    return {k: v for k, v in record.items() if k not in excluded}


def extract(record: Mapping[str, Any], keys: Iterable[str]) -> Record:
    """
    Projection sur `keys`, dans l'ordre des clés.
    Une clé absente du record est simplement omise (pas de validation).
    """
    _check_record(record, "record")
    return {k: record[k] for k in keys if k in record}
