from __future__ import annotations

from functools import wraps
from typing import Callable, Optional, TypeVar

from django.http import HttpRequest, JsonResponse

F = TypeVar("F", bound=Callable[..., object])


def _gate_or_response(request: HttpRequest):
    context = getattr(request, "session_context", None)
    if context is None:
        detail = getattr(request, "token_error", None) and "Invalid token"
        return None, JsonResponse({"error": detail or "Unauthorized"}, status=401)
    if context.user is None:
        return None, JsonResponse({"error": "Invalid token"}, status=401)
    return context.gate, None


def require_permission(module: str, action: str) -> Callable[[F], F]:
    """Décorateur exigeant la permission (module, action) sur la session."""

    def decorator(view_func: F) -> F:
        @wraps(view_func)
        def wrapper(request: HttpRequest, *args, **kwargs):
            if request.method == "OPTIONS":
                return view_func(request, *args, **kwargs)
            gate, denied = _gate_or_response(request)
            if denied is not None:
                return denied
            if not gate.has_permission(module, action):
                return JsonResponse(
                    {"error": f"Forbidden: '{module}.{action}' permission required"},
                    status=403,
                )
            return view_func(request, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


def require_role(*roles: str, message: Optional[str] = None) -> Callable[[F], F]:
    """Décorateur exigeant au moins un des rôles donnés."""

    def decorator(view_func: F) -> F:
        @wraps(view_func)
        def wrapper(request: HttpRequest, *args, **kwargs):
            if request.method == "OPTIONS":
                return view_func(request, *args, **kwargs)
            gate, denied = _gate_or_response(request)
            if denied is not None:
                return denied
            if roles and not gate.has_role(*roles):
                return JsonResponse(
                    {"error": message or "Forbidden: role not allowed"}, status=403
                )
            return view_func(request, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
