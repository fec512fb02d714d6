from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from audit_json.core.config import db_url


def make_engine(url: str = None) -> Engine:
    """
    Crée un Engine SQLAlchemy :
    - Postgres si AUDIT_JSON_DB_URL / DATABASE_URL est défini
    - Sinon SQLite (fichier local audit_json.db)
    """
    url = url or db_url()
    common_kwargs = dict(pool_pre_ping=True, future=True)
    if url.startswith("sqlite"):
        # check_same_thread=False pour usage éventuel en contexte threaded simple
        return create_engine(url, connect_args={"check_same_thread": False}, **common_kwargs)
    return create_engine(url, **common_kwargs)


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
