from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Union

from .codec import decode, decode_json
from .core.helpers import maybe_await
from .core.model import Rule
from .core.reactive import ReactiveAbility

logger = logging.getLogger("abacx.events")

RECOMPUTE_EVENT = "user.permissions.recompute"

Fetcher = Callable[[], Union[Any, Awaitable[Any]]]


def _event_name(event: Any) -> Optional[str]:
    if event is None or isinstance(event, str):
        return event
    if isinstance(event, Mapping):
        name = event.get("event") or event.get("name") or event.get("type")
        return name if isinstance(name, str) else None
    name = getattr(event, "name", None)
    return name if isinstance(name, str) else None


def _decode_payload(payload: Any) -> List[Rule]:
    if isinstance(payload, (str, bytes, bytearray)):
        return decode_json(payload)
    return decode(payload)


class PermissionRecomputeHandler:
    """Refreshes a ReactiveAbility when the backend signals a permission recompute.

    *fetch* returns the raw permission payload (JSON text or parsed document)
    and may be a coroutine function. Call ``hydrate`` once at session start,
    then route transport events to ``handle``/``handle_async``.
    """

    def __init__(
        self,
        ability: ReactiveAbility,
        fetch: Fetcher,
        *,
        event_name: str = RECOMPUTE_EVENT,
    ) -> None:
        self.ability = ability
        self.fetch = fetch
        self.event_name = event_name

    def accepts(self, event: Any) -> bool:
        return _event_name(event) == self.event_name

    def hydrate(self) -> List[Rule]:
        payload = self.fetch()
        if inspect.isawaitable(payload):
            if inspect.iscoroutine(payload):
                payload.close()
            raise TypeError("fetch returned an awaitable; use hydrate_async()")
        rules = _decode_payload(payload)
        self.ability.update(rules)
        logger.info("ABACX: permissions hydrated (%d rules)", len(rules))
        return rules

    async def hydrate_async(self) -> List[Rule]:
        payload = await maybe_await(self.fetch())
        rules = _decode_payload(payload)
        await self.ability.update_async(rules)
        logger.info("ABACX: permissions hydrated (%d rules)", len(rules))
        return rules

    def handle(self, event: Any) -> bool:
        """Re-fetch and install permissions if *event* is a recompute signal."""
        if not self.accepts(event):
            return False
        self.hydrate()
        return True

    async def handle_async(self, event: Any) -> bool:
        if not self.accepts(event):
            return False
        await self.hydrate_async()
        return True


__all__ = ["RECOMPUTE_EVENT", "PermissionRecomputeHandler"]
