# audit_json/deps/audit.py
from __future__ import annotations

from typing import Optional, Tuple

from fastapi import Request
from sqlalchemy.orm import Session

from audit_json.db.observer import set_audit_context


def _get_client_origin(request: Request) -> Tuple[Optional[str], Optional[int]]:
    """
    Récupère l'adresse (et le port) du client.

    Priorité :
    1) x-forwarded-for (première IP, pas de port connu)
    2) request.client (host, port)
    """
    xff = request.headers.get("x-forwarded-for")
    if xff:
        # x-forwarded-for: client, proxy1, proxy2...
        first_ip = xff.split(",")[0].strip()
        if first_ip:
            return first_ip, None

    client = request.client
    if client is None:
        return None, None
    return client.host, client.port


def audit_context_from_request(request: Request, db: Session) -> Session:
    """
    Pose sur la session l'identité de l'appelant HTTP, reprise dans chaque
    entrée d'audit écrite par cette session.
    - utilisateur : request.state.user (sinon "anonymous")
    - client : x-forwarded-for ou socket
    - application : en-têtes x-application-name / x-application-user
    """
    user = getattr(request.state, "user", None)
    user_id = getattr(user, "id", None) or "anonymous"
    client_addr, client_port = _get_client_origin(request)

    set_audit_context(
        db,
        session_user=str(user_id),
        application_name=request.headers.get("x-application-name"),
        application_user_name=request.headers.get("x-application-user"),
        client_addr=client_addr,
        client_port=client_port,
    )
    return db
