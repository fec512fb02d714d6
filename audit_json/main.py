# audit_json/main.py

from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Response
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from audit_json import __version__
from audit_json.core.config import tables_to_attach
from audit_json.core.logger import logger
from audit_json.crud.audit_log import ConnectionAuditLog
from audit_json.db import smoke
from audit_json.db.base import Base
from audit_json.db.introspection import InspectorKeyResolver
from audit_json.db.observer import SqlAlchemyObserver
from audit_json.db.session import SessionLocal, engine as default_engine
from audit_json.errors import PreconditionError
from audit_json.logging_config import configure_logging
from audit_json.models.audit_log import AuditLog
from audit_json.routers import audit_tables
from audit_json.services.attachment import AttachmentManager, KeyResolver
from audit_json.services.capture import CaptureHook
from audit_json.telemetry.metrics import get_metrics_snapshot, get_prometheus_metrics


def create_app(
    engine: Optional[Engine] = None,
    base: Any = None,
    key_resolver: Optional[KeyResolver] = None,
) -> FastAPI:
    """
    Monte l'API d'administration de l'audit :
    - registre des tables attachées (attach / detach)
    - observer SQLAlchemy installé au démarrage, retiré à l'arrêt
    """
    engine = engine or default_engine

    manager = AttachmentManager(key_resolver or InspectorKeyResolver(engine))
    hook = CaptureHook(manager)
    if engine is default_engine:
        session_factory = SessionLocal
    else:
        session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    observer = SqlAlchemyObserver(
        hook,
        engine,
        base or Base,
        session_factory=session_factory,
        sink_factory=ConnectionAuditLog,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        AuditLog.__table__.create(bind=engine, checkfirst=True)
        observer.install()
        try:
            for table in tables_to_attach():
                try:
                    manager.attach(table)
                except PreconditionError:
                    logger.exception("startup attach failed for %s", table)
                    raise
            yield
        finally:
            observer.uninstall()

    app = FastAPI(title="audit-json", version=__version__, lifespan=lifespan)

    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.attachments = manager
    app.state.capture_hook = hook
    app.state.observer = observer

    app.include_router(audit_tables.router)

    @app.get("/health")
    def health():
        return {"status": "ok", "db": "ok" if smoke(engine) else "error"}

    @app.get("/metrics", tags=["metrics"])
    async def read_metrics():
        return get_metrics_snapshot()

    @app.get("/metrics/prometheus", tags=["metrics"])
    async def read_metrics_prometheus():
        return Response(
            content=get_prometheus_metrics(),
            media_type="text/plain; version=0.0.4",
        )

    return app


configure_logging()
app = create_app()
