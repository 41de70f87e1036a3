"""Starlette/FastAPI integration: gate an endpoint on a permission check."""

from __future__ import annotations

import functools
import inspect
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse

# (action, subject) or (action, subject, field)
CheckSpec = Union[Tuple[str, Any], Tuple[str, Any, Optional[str]]]
CheckBuilder = Callable[[Any], CheckSpec]
AbilityProvider = Callable[[Any], Any]

REASON_HEADER = "X-ABACX-Reason"


def _resolve_ability(ability: Any, request: Any) -> Any:
    if hasattr(ability, "evaluate"):
        return ability
    # per-session abilities are looked up from the request
    return ability(request)


def _decide(ability: Any, spec: CheckSpec) -> Tuple[bool, Optional[str]]:
    if ability is None:
        return False, None
    action, subject, *rest = spec
    field = rest[0] if rest else None
    decision = ability.evaluate(action, subject, field)
    return bool(decision.allowed), decision.reason


def forbidden(reason: Optional[str], *, add_headers: bool = False) -> JSONResponse:
    headers = {REASON_HEADER: str(reason)} if (add_headers and reason) else {}
    return JSONResponse({"detail": reason or "Forbidden"}, status_code=403, headers=headers)


def require_access(
    ability: Union[Any, AbilityProvider],
    build_check: CheckBuilder,
    add_headers: bool = False,
) -> Callable[..., Any]:
    """
    Guard a Starlette endpoint with ``ability.evaluate``.

    Usable two ways:
      - as a decorator: ``@require_access(ability, build_check)`` on a sync or
        async ``endpoint(request)``;
      - as a dependency: ``deny = await require_access(...)(request)``, which
        is ``None`` when allowed and a 403 JSONResponse otherwise.

    *ability* is a ReactiveAbility (or Ability) or a callable taking the request
    and returning the signed-in actor's ability (``None`` denies). *build_check*
    maps the request to ``(action, subject)`` or ``(action, subject, field)``.
    With *add_headers* the deny reason is also sent as ``X-ABACX-Reason``.
    """

    async def check(request: Any) -> Optional[JSONResponse]:
        allowed, reason = _decide(_resolve_ability(ability, request), build_check(request))
        return None if allowed else forbidden(reason, add_headers=add_headers)

    def wrap(endpoint: Callable[[Any], Any]) -> Callable[[Any], Awaitable[Any]]:
        is_async = inspect.iscoroutinefunction(endpoint)

        @functools.wraps(endpoint)
        async def guarded_endpoint(request: Any) -> Any:
            denied = await check(request)
            if denied is not None:
                return denied
            if is_async:
                return await endpoint(request)
            return await run_in_threadpool(endpoint, request)

        return guarded_endpoint

    def decorator_or_dependency(arg: Any) -> Any:
        if callable(arg):
            return wrap(arg)
        return check(arg)

    return decorator_or_dependency


__all__ = ["REASON_HEADER", "forbidden", "require_access"]
