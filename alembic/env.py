# alembic/env.py
# Versão: 2.0.0 (2025-10-02)
# - Usa o MESMO engine do app (database.engine): mesma URL, driver, SSL e o
#   PRAGMA foreign_keys do SQLite.
# - Metadata alvo: models + auth_models (compartilham database.Base).
# - SQLite roda em modo batch (ALTER TABLE limitado).

from __future__ import annotations

import logging
import sys
from pathlib import Path
from logging.config import fileConfig

from alembic import context

config = context.config

# Logging do Alembic (opcional; respeita alembic.ini)
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# raiz do projeto (.. de /alembic) no path para importar database/models
BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from database import DATABASE_URL, engine, engine_info  # noqa: E402
import auth_models  # noqa: E402,F401
from models import Base  # noqa: E402

target_metadata = Base.metadata
log = logging.getLogger("alembic.env")


def run_migrations_offline() -> None:
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    log.info("usando banco %s", engine_info()["url"])
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
