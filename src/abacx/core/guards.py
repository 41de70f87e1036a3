from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar, Union

from .model import SubjectInput

T = TypeVar("T")

SubjectArg = Union[SubjectInput, Callable[..., SubjectInput]]


class ForbiddenError(PermissionError):
    """Raised by guarded accessors when the ability denies the action."""

    def __init__(self, action: str, subject_type: str, reason: Optional[str] = None) -> None:
        self.action = action
        self.subject_type = subject_type
        self.reason = reason
        msg = f"cannot {action} {subject_type}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


def _subject_type(subject: Any) -> str:
    if isinstance(subject, str):
        return subject
    return str(getattr(subject, "subject_type", type(subject).__name__.lower()))


def guarded(
    ability: Any,
    action: str,
    subject: SubjectInput,
    value: T,
    default: Optional[T] = None,
    *,
    field: Optional[str] = None,
) -> Optional[T]:
    """Return *value* when *action* on *subject* is allowed, else *default*."""
    return value if ability.can(action, subject, field) else default


def authorize(
    ability: Any, action: str, subject: SubjectInput, field: Optional[str] = None
) -> None:
    """Raise ForbiddenError unless *action* on *subject* is allowed."""
    decision = ability.evaluate(action, subject, field)
    if not decision.allowed:
        raise ForbiddenError(action, _subject_type(subject), decision.reason)


def requires(
    ability: Any,
    action: str,
    subject: SubjectArg,
    *,
    field: Optional[str] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator that checks a permission before the wrapped function runs.

    *ability* may be the ability itself or a zero-argument callable returning it
    (per-session lookup). *subject* may be a subject or a callable receiving the
    wrapped function's arguments and returning the subject to check.
    """

    def _resolve(args: tuple[Any, ...], kwargs: dict[str, Any]) -> tuple[Any, Any]:
        current = ability() if callable(ability) and not hasattr(ability, "can") else ability
        subj = subject(*args, **kwargs) if callable(subject) and not _is_subject(subject) else subject
        return current, subj

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def _async_wrapper(*args: Any, **kwargs: Any) -> Any:
                current, subj = _resolve(args, kwargs)
                authorize(current, action, subj, field)
                return await func(*args, **kwargs)

            return _async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def _wrapper(*args: Any, **kwargs: Any) -> T:
            current, subj = _resolve(args, kwargs)
            authorize(current, action, subj, field)
            return func(*args, **kwargs)

        return _wrapper

    return decorator


def _is_subject(value: Any) -> bool:
    return hasattr(value, "subject_type") and hasattr(value, "get_attr")


def can_access_field(field: str, permitted: Optional[Iterable[str]]) -> bool:
    """Check *field* against a permitted set; ``"address.*"`` covers nested paths."""
    if permitted is None:
        return True
    allowed = set(permitted)
    if field in allowed:
        return True
    parts = field.split(".")
    for i in range(1, len(parts) + 1):
        if ".".join(parts[:i]) + ".*" in allowed:
            return True
    return False


def filter_fields(
    ability: Any, action: str, subject: SubjectInput, data: Mapping[str, Any]
) -> dict[str, Any]:
    """Keep only the keys of *data* that *action* may touch on *subject*."""
    permitted = ability.permitted_fields(action, subject)
    if permitted is None:
        return dict(data)
    return {k: v for k, v in data.items() if can_access_field(k, permitted)}
