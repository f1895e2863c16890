# utils/db_utils.py
# Reconhecimento de erros do banco (SQLite e PostgreSQL).
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

_PG_UNIQUE_VIOLATION = "23505"


def violacao_unicidade(exc: Exception) -> bool:
    """True se o erro é de chave única (ex.: contract_number repetido)."""
    if not isinstance(exc, IntegrityError):
        return False
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == _PG_UNIQUE_VIOLATION:
        return True
    msg = str(orig or exc).lower()
    return "unique constraint" in msg or "duplicate key" in msg
