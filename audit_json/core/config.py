# audit_json/core/config.py
from __future__ import annotations

import os
from typing import List

from dotenv import load_dotenv

# Les variables du fichier .env ne remplacent pas l'environnement réel
load_dotenv()


def _default_sqlite_url() -> str:
    # Fichier SQLite à la racine du dépôt
    return "sqlite:///./audit_json.db"


def db_url() -> str:
    """Retourne l'URL de connexion (env AUDIT_JSON_DB_URL/DATABASE_URL ou fallback SQLite)."""
    url = (os.getenv("AUDIT_JSON_DB_URL", "") or os.getenv("DATABASE_URL", "")).strip()

    # Les hébergeurs fournissent souvent postgres:// ; SQLAlchemy + psycopg 3 préfèrent postgresql+psycopg://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)

    return url if url else _default_sqlite_url()


def default_schema() -> str:
    """Schéma utilisé pour les tables déclarées sans schéma."""
    return os.getenv("AUDIT_JSON_DEFAULT_SCHEMA", "public").strip() or "public"


def log_level() -> str:
    return os.getenv("AUDIT_JSON_LOG_LEVEL", "INFO").strip().upper() or "INFO"


def tables_to_attach() -> List[str]:
    """Tables à attacher au démarrage de l'API (AUDIT_JSON_ATTACH=public.users,orders)."""
    raw = os.getenv("AUDIT_JSON_ATTACH", "")
    return [t.strip() for t in raw.split(",") if t.strip()]
