# audit_json/telemetry/metrics.py

from threading import Lock
from typing import Dict

from audit_json.schemas.audit_entry import AuditAction

_lock = Lock()

OUTCOMES = ("emitted", "suppressed", "failed")

# Registre de compteurs en mémoire : {outcome: {action: n}}
_counters: Dict[str, Dict[str, int]] = {
    outcome: {action.name.lower(): 0 for action in AuditAction} for outcome in OUTCOMES
}


def record_capture(action: AuditAction, outcome: str) -> None:
    """
    Enregistre le résultat d'une capture.
    Thread-safe grâce au Lock.
    """
    if outcome not in _counters:
        raise ValueError(f"unknown capture outcome: {outcome}")
    with _lock:
        _counters[outcome][action.name.lower()] += 1


def get_metrics_snapshot() -> Dict[str, Dict[str, int]]:
    """
    Retourne un snapshot des compteurs en JSON (pour /metrics).
    """
    with _lock:
        snapshot = {outcome: dict(per_action) for outcome, per_action in _counters.items()}
    for outcome in OUTCOMES:
        snapshot[outcome]["total"] = sum(snapshot[outcome].values())
    return snapshot


def reset_metrics() -> None:
    with _lock:
        for per_action in _counters.values():
            for action in per_action:
                per_action[action] = 0


def get_prometheus_metrics() -> str:
    """
    Retourne les compteurs au format texte Prometheus (exposition format).
    """
    with _lock:
        counters = {outcome: dict(per_action) for outcome, per_action in _counters.items()}

    helps = {
        "emitted": "Audit entries appended to the audit log.",
        "suppressed": "Updates skipped because only ignored fields changed.",
        "failed": "Captures that failed and aborted the guarded mutation.",
    }

    lines = []
    for outcome in OUTCOMES:
        name = f"audit_json_captures_{outcome}_total"
        lines.append(f"# HELP {name} {helps[outcome]}")
        lines.append(f"# TYPE {name} counter")
        for action, value in counters[outcome].items():
            lines.append(f'{name}{{action="{action}"}} {value}')
        lines.append("")

    return "\n".join(lines)
