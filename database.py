# database.py
# -----------------------------------------------------------------------------
# Versão: 1.2.0 (2025-10-02)
# - Autodetecção de driver Postgres (psycopg/psycopg2), NullPool/QueuePool e SSL.
# - SQLite (dev/testes) liga PRAGMA foreign_keys para que o ON DELETE CASCADE
#   dos filhos (aditivos, apostilamentos, fiscais, documentos) funcione.
# - get_db(): dependência FastAPI; db_session(): context manager p/ scripts.
# -----------------------------------------------------------------------------

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import NullPool, QueuePool

Base = declarative_base()


# ------------------------- helpers URL/driver -------------------------

def _normalize_db_url(url: str | None) -> str | None:
    if not url:
        return url
    url = url.strip()
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def _preferred_driver_from_runtime() -> str:
    """Retorna driver preferido: APP_DB_DRIVER, psycopg (v3) se instalado, senão psycopg2."""
    env = (os.getenv("APP_DB_DRIVER") or "").strip().lower()
    if env in {"psycopg", "psycopg2"}:
        return env
    try:
        import psycopg  # noqa: F401
        return "psycopg"
    except ImportError:
        return "psycopg2"


def _apply_driver_and_ssl(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme.startswith("postgresql"):
        return url  # não é Postgres
    if "+" in parsed.scheme:
        return url  # driver já explícito na URL

    q = dict(parse_qsl(parsed.query, keep_blank_values=True))
    force_ssl = os.getenv("FORCE_DB_SSL", "0").strip().lower() in {"1", "true"}
    if force_ssl and "sslmode" not in {k.lower() for k in q}:
        q["sslmode"] = "require"

    new = parsed._replace(scheme=f"postgresql+{_preferred_driver_from_runtime()}", query=urlencode(q))
    return urlunparse(new)


# ------------------------- build DATABASE_URL -------------------------

DATABASE_URL = (
    os.getenv("APP_DB_URL")
    or os.getenv("DATABASE_URL")
    or os.getenv("SQLALCHEMY_DATABASE_URL")
)
DATABASE_URL = _normalize_db_url(DATABASE_URL)

if not DATABASE_URL:
    db_path = (Path(__file__).resolve().parent / "contratos.db").resolve()
    DATABASE_URL = f"sqlite+pysqlite:///{db_path.as_posix()}"
else:
    DATABASE_URL = _apply_driver_and_ssl(DATABASE_URL)


# ------------------------- engine args -------------------------

connect_args: dict = {}
engine_kwargs: dict = {"future": True, "pool_pre_ping": True}

if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
else:
    pool_mode = (os.getenv("APP_DB_POOL") or "null").strip().lower()
    if pool_mode == "queue":
        engine_kwargs.update({
            "poolclass": QueuePool,
            "pool_size": int(os.getenv("APP_DB_POOL_SIZE", "5")),
            "max_overflow": int(os.getenv("APP_DB_MAX_OVERFLOW", "10")),
            "pool_recycle": int(os.getenv("APP_DB_POOL_RECYCLE", "1800")),
            "pool_use_lifo": True,
        })
    else:
        engine_kwargs.update({"poolclass": NullPool})

    connect_args.update({
        "keepalives": 1,
        "keepalives_idle": 30,
        "keepalives_interval": 10,
        "keepalives_count": 5,
        "application_name": os.getenv("APP_NAME", "registro-contratos"),
    })


# ------------------------- engine & session -------------------------

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    **engine_kwargs,
)


@event.listens_for(engine, "connect")
def _sqlite_fk_on(dbapi_conn, _record):
    if engine.dialect.name != "sqlite":
        return
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


# por padrão DESATIVA expiração pós-commit (evita DetachedInstanceError)
_expire_default = os.getenv("APP_DB_EXPIRE_ON_COMMIT", "false").strip().lower() in {"1", "true", "yes"}
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=_expire_default,
)


def get_db() -> Generator[Session, None, None]:
    """Dependência FastAPI padrão: abre sessão por request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def db_session(commit: bool = True) -> Generator[Session, None, None]:
    """
    Abre uma sessão, faz commit (ou rollback se der erro) e fecha.
    Uso típico em scripts de manutenção:
        with db_session() as db:
            ...
    """
    db = SessionLocal()
    try:
        yield db
        if commit:
            db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _redact_url(u: str) -> str:
    p = urlparse(u)
    if p.password:
        netloc = (p.username or "") + ":***@" + (p.hostname or "")
        if p.port:
            netloc += f":{p.port}"
        p = p._replace(netloc=netloc)
    return urlunparse(p)


def engine_info() -> dict:
    return {
        "url": _redact_url(DATABASE_URL),
        "pool": engine.pool.__class__.__name__,
        "driver": urlparse(DATABASE_URL).scheme,
        "expire_on_commit": _expire_default,
    }
