# routers/auth.py — v2.0.0 (2025-10-02)
# Base: v1.2.0 — preserva validação de `next`, sessão (user_id/username),
# redirects 303, compat com templates via request.app.state.templates.
# v2.0.0:
# - Login em /auth (destino padrão /admin/contratos).
# - Só pbkdf2_sha256 (security.py); sem texto puro legado.
# - Dependências sessao_atual/exigir_admin montam SessaoUsuario a cada request
#   a partir do cookie + user_roles.

from datetime import datetime
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Request, Form, Depends, HTTPException
from fastapi.responses import RedirectResponse, HTMLResponse
from sqlalchemy.orm import Session
from sqlalchemy import func
from jinja2 import TemplateNotFound

from database import get_db
from auth_models import User, roles_of
from security import SessaoUsuario, verify_password, needs_rehash, hash_password, is_admin

router = APIRouter(tags=["Auth"])

DESTINO_PADRAO = "/admin/contratos"


def _safe_next(next_url: Optional[str], default: str = DESTINO_PADRAO) -> str:
    if not next_url:
        return default
    try:
        p = urlparse(next_url)
    except ValueError:
        return default
    if p.scheme or p.netloc:
        return default
    if not next_url.startswith("/") or next_url.startswith("//"):
        return default
    if next_url.startswith("/auth"):
        return default
    return next_url


# ---------------------------------------------------------------------------
# sessão
# ---------------------------------------------------------------------------

def sessao_atual(request: Request, db: Session = Depends(get_db)) -> Optional[SessaoUsuario]:
    uid = request.session.get("user_id") if "session" in request.scope else None
    if not uid:
        return None
    user = db.get(User, int(uid))
    if user is None or not user.is_active:
        request.session.clear()
        return None
    return SessaoUsuario(user_id=user.id, username=user.username, papeis=roles_of(db, user.id))


def exigir_admin(sessao: Optional[SessaoUsuario] = Depends(sessao_atual)) -> SessaoUsuario:
    if sessao is None:
        raise HTTPException(status_code=401, detail="unauthorized")
    if not is_admin(sessao):
        raise HTTPException(status_code=403, detail="Acesso restrito a administradores")
    return sessao


# ---------------------------------------------------------------------------
# rotas
# ---------------------------------------------------------------------------

def _render_login(request: Request, nxt: str, erro: Optional[str] = None, status_code: int = 200):
    ctx = {"ano": datetime.now().year, "next": nxt, "erro": erro}
    try:
        return request.app.state.templates.TemplateResponse(request, "login.html", ctx, status_code=status_code)
    except TemplateNotFound:
        msg = f"<p style='color:#b00'>{erro}</p>" if erro else ""
        html = f"""
        <!doctype html><meta charset="utf-8">
        <title>Acesso administrativo</title>
        <form method="post" action="/auth" style="max-width:340px;margin:80px auto;font-family:system-ui">
          <h3>Acesso administrativo</h3>{msg}
          <div><input name="username" placeholder="Usuário" required style="width:100%;padding:8px;margin:6px 0;"></div>
          <div><input name="password" type="password" placeholder="Senha" required style="width:100%;padding:8px;margin:6px 0;"></div>
          <input type="hidden" name="next" value="{nxt}">
          <button style="padding:8px 16px;">Entrar</button>
        </form>"""
        return HTMLResponse(html, status_code=status_code)


@router.get("/auth", response_class=HTMLResponse)
async def login_form(request: Request):
    nxt = _safe_next(request.query_params.get("next"))
    if request.session.get("user_id"):
        return RedirectResponse(nxt, status_code=303)
    return _render_login(request, nxt)


@router.post("/auth")
def login_submit(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    next: str = Form(default=DESTINO_PADRAO),
    db: Session = Depends(get_db),
):
    nxt = _safe_next(next)
    user: Optional[User] = (
        db.query(User)
        .filter(func.lower(User.username) == func.lower(username.strip()))
        .first()
    )
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        return _render_login(request, nxt, erro="Usuário ou senha inválidos.", status_code=401)

    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        db.commit()

    request.session["user_id"] = int(user.id)
    request.session["username"] = user.username
    request.session["login_ts"] = datetime.utcnow().isoformat()
    return RedirectResponse(nxt, status_code=303)


@router.get("/logout")
async def logout(request: Request):
    request.session.clear()
    return RedirectResponse("/", status_code=303)


@router.get("/api/health")
async def health(request: Request):
    return {"ok": True, "auth": bool(request.session.get("user_id"))}
