# auth_models.py — v1.3.0 (02/10/2025)
# - User: credenciais de acesso ao console administrativo.
# - UserRole (user_roles): papéis por usuário ("admin" | "user").
# - has_role(): predicado usado pelas rotas administrativas.
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Session, relationship

from database import Base

PAPEIS = ("admin", "user")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(120), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")


class UserRole(Base):
    __tablename__ = "user_roles"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False)

    user = relationship("User", back_populates="roles")

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        CheckConstraint("role in ('admin','user')", name="ck_user_roles_role"),
    )


def has_role(db: Session, user_id, role: str) -> bool:
    if user_id is None:
        return False
    return (
        db.query(UserRole.id)
        .filter(UserRole.user_id == int(user_id), UserRole.role == role)
        .first()
        is not None
    )


def roles_of(db: Session, user_id) -> frozenset:
    """Todos os papéis do usuário (vazio se não houver)."""
    if user_id is None:
        return frozenset()
    rows = db.query(UserRole.role).filter(UserRole.user_id == int(user_id)).all()
    return frozenset(r[0] for r in rows)


def grant_role(db: Session, user: User, role: str) -> None:
    if role not in PAPEIS:
        raise ValueError(f"papel inválido: {role!r}")
    if not has_role(db, user.id, role):
        db.add(UserRole(user_id=user.id, role=role))
        db.flush()
