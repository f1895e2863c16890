# security.py — v1.2.0 (02/10/2025)
# Hash de senha (passlib) e sessão do usuário como valor explícito.
# A checagem de papel é função pura sobre a sessão; quem monta a sessão
# (routers/auth.py) é quem consulta o banco.
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from passlib.context import CryptContext

_pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_ctx.hash(password)


def verify_password(password: str, encoded: Optional[str]) -> bool:
    if not encoded:
        return False
    try:
        return _pwd_ctx.verify(password, encoded)
    except (ValueError, TypeError):
        # hash em formato desconhecido
        return False


def needs_rehash(encoded: str) -> bool:
    return _pwd_ctx.needs_update(encoded)


@dataclass(frozen=True)
class SessaoUsuario:
    user_id: int
    username: str
    papeis: frozenset = field(default_factory=frozenset)


def tem_papel(sessao: Optional[SessaoUsuario], papel: str) -> bool:
    if sessao is None:
        return False
    return papel in sessao.papeis


def is_admin(sessao: Optional[SessaoUsuario]) -> bool:
    return tem_papel(sessao, "admin")
