# tests/conftest.py

import os
import tempfile
from datetime import datetime, timezone
from typing import Callable, List

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import JSON, Column, DateTime, Integer, String, create_engine, text
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


# ---------------------------------------------------------------------
# IMPORTANT : AUDIT_JSON_DB_URL doit être défini AVANT l'import du paquet
# ---------------------------------------------------------------------
_fd, _path = tempfile.mkstemp(prefix="audit_json_test_", suffix=".sqlite")
os.close(_fd)
os.environ["AUDIT_JSON_DB_URL"] = f"sqlite:///{_path}"
os.environ.pop("AUDIT_JSON_DEFAULT_SCHEMA", None)
os.environ.pop("AUDIT_JSON_ATTACH", None)

from audit_json.crud.audit_log import get_recent  # noqa: E402
from audit_json.db.introspection import InspectorKeyResolver  # noqa: E402
from audit_json.db.observer import SqlAlchemyObserver  # noqa: E402
from audit_json.main import create_app  # noqa: E402
from audit_json.models.audit_log import AuditLog  # noqa: E402
from audit_json.schemas.audit_entry import AuditContext, AuditEntry  # noqa: E402
from audit_json.services.attachment import AttachmentManager  # noqa: E402
from audit_json.services.capture import CaptureHook  # noqa: E402
from audit_json.telemetry.metrics import reset_metrics  # noqa: E402


# ---------------------------------------------------------------------
# Modèles "hôte" utilisés par les tests
# ---------------------------------------------------------------------
class ModelBase(DeclarativeBase):
    pass


class Customer(ModelBase):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False)
    secret = Column(String(64), nullable=True)
    profile = Column(JSON, nullable=True)
    updated_at = Column(DateTime, nullable=True)


class OrderLine(ModelBase):
    __tablename__ = "order_lines"

    order_id = Column(Integer, primary_key=True)
    line_no = Column(Integer, primary_key=True)
    sku = Column(String(32), nullable=False)
    qty = Column(Integer, nullable=False, default=1)


@pytest.fixture(scope="session", autouse=True)
def _test_db_file():
    yield _path
    try:
        os.remove(_path)
    except OSError:
        pass


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def engine(tmp_path):
    # Une base SQLite sur disque par test (plus fiable qu'in-memory)
    eng = create_engine(
        f"sqlite:///{tmp_path / 'audit.sqlite'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    ModelBase.metadata.create_all(bind=eng)
    AuditLog.__table__.create(bind=eng, checkfirst=True)
    with eng.begin() as conn:
        # Table sans clé primaire : ne peut pas être auditée
        conn.execute(text("CREATE TABLE event_stream (payload TEXT)"))
    yield eng
    eng.dispose()


@pytest.fixture
def SessionLocal(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def manager(engine):
    return AttachmentManager(InspectorKeyResolver(engine))


@pytest.fixture
def observer(engine, SessionLocal, manager):
    obs = SqlAlchemyObserver(CaptureHook(manager), engine, ModelBase, session_factory=SessionLocal)
    obs.install()
    yield obs
    obs.uninstall()


@pytest.fixture
def audit_entries(engine) -> Callable[[], List[AuditEntry]]:
    """Entrées du journal, de la plus ancienne à la plus récente."""

    def _read() -> List[AuditEntry]:
        with Session(engine) as s:
            return list(reversed(get_recent(s, limit=1000)))

    return _read


@pytest.fixture
def audit_context() -> AuditContext:
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    return AuditContext(
        session_user_name="alice",
        transaction_id=42,
        action_tstamp_tx=now,
        action_tstamp_stm=now,
        client_query="UPDATE customers SET name = 'y' WHERE id = 1",
        client_addr="203.0.113.10",
        client_port=54321,
        application_name="crm",
    )


@pytest.fixture
def app(engine):
    return create_app(engine=engine, base=ModelBase)


@pytest.fixture
def client(app):
    # Le "with" déclenche le lifespan (installation de l'observer)
    with TestClient(app) as c:
        yield c


@pytest_asyncio.fixture
async def app_client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
