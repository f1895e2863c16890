# auth_middleware.py v2.0.0 (2025-10-02)
# - A consulta pública é aberta: só os prefixos protegidos (padrão: /admin)
#   exigem sessão. O papel (admin) é checado nas rotas (routers/auth.exigir_admin).
# - Itens terminados em '/' são prefixos; '/admin' cobre '/admin' e '/admin/...'.
# - 401 JSON para chamadas de API/JSON; 303 para /auth?next=... no HTML.

from urllib.parse import quote

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, JSONResponse

DEFAULT_PROTECTED = ("/admin",)


class AuthRequiredMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        protected: tuple[str, ...] = DEFAULT_PROTECTED,
        api_prefix: str = "/api",
        login_path: str = "/auth",
    ):
        super().__init__(app)
        self.protected = tuple(p.rstrip("/") for p in protected)
        self.api_prefix = api_prefix
        self.login_path = login_path

    async def dispatch(self, request: Request, call_next):
        path = request.url.path or "/"

        if request.method == "OPTIONS" or not self._is_protected(path):
            return await call_next(request)

        # sem SessionMiddleware não há como autenticar
        if "session" not in request.scope:
            return self._unauthorized_response(request)

        if request.session.get("user_id"):
            return await call_next(request)

        return self._unauthorized_response(request)

    def _is_protected(self, path: str) -> bool:
        for p in self.protected:
            if path == p or path.startswith(p + "/"):
                return True
        return False

    def _unauthorized_response(self, request: Request):
        accepts = (request.headers.get("accept") or "").lower()
        wants_json = (
            request.url.path.startswith(self.api_prefix)
            or f"{self.api_prefix}/" in request.url.path
            or "application/json" in accepts
            or request.method not in ("GET", "HEAD")
        )
        if wants_json:
            return JSONResponse({"detail": "unauthorized"}, status_code=401)

        next_url = request.url.path
        if request.url.query:
            next_url += "?" + request.url.query
        return RedirectResponse(url=f"{self.login_path}?next={quote(next_url, safe='/')}", status_code=303)
