from logging.config import fileConfig
from alembic import context
from sqlalchemy import engine_from_config, pool

from audit_json.core.config import db_url
from audit_json.db.base import Base
import audit_json.models.audit_log  # noqa: F401  (enregistre AuditLog sur Base.metadata)

# Alembic Config
config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# === CIBLE POUR L'AUTOGENERATE ===
target_metadata = Base.metadata


def get_url():
    # Priorité aux variables d'env (AUDIT_JSON_DB_URL / DATABASE_URL), sinon alembic.ini
    env_url = db_url()
    if env_url and not env_url.startswith("sqlite:///./audit_json.db"):
        return env_url
    return config.get_main_option("sqlalchemy.url") or env_url


def run_migrations_offline():
    url = get_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    conf = config.get_section(config.config_ini_section) or {}
    conf["sqlalchemy.url"] = get_url()
    connectable = engine_from_config(
        conf,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
