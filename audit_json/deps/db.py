# audit_json/deps/db.py
from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from audit_json.deps.audit import audit_context_from_request
from audit_json.services.attachment import AttachmentManager


def get_manager(request: Request) -> AttachmentManager:
    return request.app.state.attachments


def get_audited_db(request: Request) -> Generator[Session, None, None]:
    """Une session par requête, déjà porteuse du contexte d'audit de l'appelant."""
    db = request.app.state.session_factory()
    try:
        yield audit_context_from_request(request, db)
    finally:
        db.close()
