# main.py – Versão 4.0.0 (2025-10-02) — registro público de contratos + console administrativo
import os
import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from database import Base, engine, engine_info
import models  # noqa: F401  (registra as tabelas no Base)
import auth_models  # noqa: F401
from utils.auth_middleware import AuthRequiredMiddleware
from routers import admin_contratos, auth as auth_router, dashboard, publico

log = logging.getLogger("uvicorn.error")

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = os.getenv("APP_TEMPLATES_DIR", str(BASE_DIR / "templates"))

# ── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(title="Registro de Contratos", version="4.0.0")

# Middlewares: o último adicionado é o mais externo, então a sessão
# precisa ser adicionada depois do Auth para já existir quando ele rodar.
app.add_middleware(AuthRequiredMiddleware, protected=("/admin",), login_path="/auth")
app.add_middleware(
    SessionMiddleware,
    secret_key=os.getenv("SECRET_KEY", "dev-change-me"),
    same_site="lax",
    https_only=False,
    session_cookie="appsession",
)

# Cria tabelas se possível (no-op se já existirem; produção usa alembic)
try:
    Base.metadata.create_all(bind=engine)
except SQLAlchemyError as _e:
    log.warning("[main] create_all falhou: %s", _e)

templates = Jinja2Templates(directory=TEMPLATES_DIR)
templates.env.filters["brl"] = publico.fmt_brl
templates.env.filters["data"] = publico.fmt_data
app.state.templates = templates  # expõe p/ routers

app.include_router(auth_router.router)
app.include_router(publico.router)
app.include_router(dashboard.router)
app.include_router(admin_contratos.router)

log.info("[main] banco: %s", engine_info())
