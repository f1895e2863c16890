"""
Módulo: Versionamento de Endpoints
Versão: 1.1.0
Data: 2025-10-02

Fornece:
- @version("x.y.z"): marca o endpoint com __version__ (sem alterar a resposta)
- set_version_header: dependência de router que devolve X-Endpoint-Version
"""

import inspect
from functools import wraps
from typing import Any, Callable, Optional

from fastapi import Request, Response


def version(v: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Ex.: @version("1.2.3") logo abaixo do @router.get(...)."""
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def wrapper(*args, **kwargs):
                return await func(*args, **kwargs)
        else:
            # síncrono continua síncrono (FastAPI roda em threadpool)
            @wraps(func)
            def wrapper(*args, **kwargs):
                return func(*args, **kwargs)
        setattr(wrapper, "__version__", v)
        return wrapper
    return decorator


async def set_version_header(request: Request, response: Response) -> None:
    endpoint: Optional[Callable[..., Any]] = request.scope.get("endpoint")
    ver = getattr(endpoint, "__version__", None) if endpoint is not None else None
    if ver:
        response.headers["X-Endpoint-Version"] = str(ver)
