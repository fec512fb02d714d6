# audit_json/db/__init__.py : façade simple (sync)
from sqlalchemy import text

from audit_json.core.config import db_url
from audit_json.db.base import Base
from audit_json.db.session import SessionLocal, engine, make_engine


def smoke(bind=None) -> bool:
    """
    Smoke test rapide : SELECT 1 (PG/SQLite). Retourne True si succès.
    """
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


__all__ = ["Base", "SessionLocal", "db_url", "engine", "make_engine", "smoke"]
