from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..codec import decode, decode_json, encode, encode_json
from .ability import Ability, Decision
from .helpers import fire_and_forget
from .model import Rule, SubjectInput, as_subject, subject_type_of
from .ports import DecisionLogSink, MetricsSink

logger = logging.getLogger("abacx.reactive")

Listener = Callable[[], Any]


@dataclass(frozen=True)
class PermissionChange:
    action: str
    subject_type: str
    previous: bool
    current: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ReactiveAbility:
    """Holds the current permission snapshot of one signed-in actor.

    The installed Ability is a single reference replaced after compilation has
    finished, so a query sees either the old or the new rule set, never a mix.
    Writers are serialized; readers take no lock and never block.

    Until the first ``update`` (or ``clear``) every check is denied and
    ``can_async`` waits.

    Args:
        rules: initial rules; when given they are installed immediately.
        logger_sink: optional decision audit sink (``log(payload)``).
        metrics: optional metrics sink (``inc``; ``observe`` when present).
    """

    def __init__(
        self,
        rules: Optional[Iterable[Rule]] = None,
        *,
        logger_sink: Optional[DecisionLogSink] = None,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        self.logger_sink = logger_sink
        self.metrics = metrics

        self._ability: Ability = Ability.empty()
        self._installed = threading.Event()
        self._write_lock = threading.RLock()
        self._issued = 0
        self._applied = 0

        self._listeners_lock = threading.Lock()
        self._listeners: Tuple[Listener, ...] = ()
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, "asyncio.Future[None]"]] = []

        if rules is not None:
            self.update(rules)

    # ------------------------------------------------------------------ state

    @property
    def ability(self) -> Ability:
        """The currently installed, immutable Ability."""
        return self._ability

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return self._ability.rules

    @property
    def is_ready(self) -> bool:
        return self._installed.is_set()

    # ---------------------------------------------------------------- updates

    def update(self, rules: Iterable[Rule]) -> None:
        """Compile *rules* and install them; listeners run after the swap.

        If compilation fails the previous rule set stays installed and the
        error propagates.
        """
        with self._write_lock:
            seq = self._next_seq()
            self._install(Ability(rules), seq, "update")

    async def update_async(self, rules: Iterable[Rule]) -> None:
        """Like update(), with compilation moved to a worker thread."""
        with self._write_lock:
            seq = self._next_seq()
        ability = await asyncio.to_thread(Ability, list(rules))
        with self._write_lock:
            self._install(ability, seq, "update")

    def update_from_json(self, payload: Any) -> List[Rule]:
        """Decode a wire payload (JSON text, bytes or parsed document) and install it."""
        if isinstance(payload, (str, bytes, bytearray)):
            rules = decode_json(payload)
        else:
            rules = decode(payload)
        self.update(rules)
        return rules

    def add_rule(self, rule: Rule) -> None:
        with self._write_lock:
            seq = self._next_seq()
            self._install(Ability(self._ability.rules + (rule,)), seq, "update")

    def clear(self) -> None:
        """Install an empty rule set: everything is denied from now on."""
        with self._write_lock:
            seq = self._next_seq()
            self._install(Ability.empty(), seq, "clear")

    def _next_seq(self) -> int:
        self._issued += 1
        return self._issued

    def _install(self, ability: Ability, seq: int, kind: str) -> None:
        if seq <= self._applied:
            # a later update was installed while this one was compiling
            logger.debug("ABACX: dropped stale %s #%d (installed #%d)", kind, seq, self._applied)
            return
        self._ability = ability
        self._applied = seq
        self._installed.set()
        logger.info("ABACX: permissions %s installed (%d rules)", kind, len(ability))
        self._wake_waiters()
        self._notify()

    # ---------------------------------------------------------------- queries

    def evaluate(self, action: str, subject: SubjectInput, field: Optional[str] = None) -> Decision:
        start = time.perf_counter()
        subj = as_subject(subject)
        decision = self._ability.evaluate(action, subj, field)
        if self.logger_sink is not None or self.metrics is not None:
            self._record(decision, action, subj, field, time.perf_counter() - start)
        return decision

    def can(self, action: str, subject: SubjectInput, field: Optional[str] = None) -> bool:
        return self.evaluate(action, subject, field).allowed

    def cannot(self, action: str, subject: SubjectInput, field: Optional[str] = None) -> bool:
        return not self.can(action, subject, field)

    def permitted_fields(self, action: str, subject: SubjectInput) -> Optional[FrozenSet[str]]:
        return self._ability.permitted_fields(action, subject)

    def relevant_rule(
        self, action: str, subject: SubjectInput, field: Optional[str] = None
    ) -> Optional[Rule]:
        return self._ability.relevant_rule(action, subject, field)

    async def wait_ready(self, timeout: Optional[float] = None) -> None:
        """Return once a rule set (possibly empty) has been installed."""
        if self._installed.is_set():
            return
        loop = asyncio.get_running_loop()
        fut: "asyncio.Future[None]" = loop.create_future()
        with self._listeners_lock:
            if self._installed.is_set():
                return
            self._waiters.append((loop, fut))
        try:
            await asyncio.wait_for(fut, timeout)
        finally:
            with self._listeners_lock:
                self._waiters = [w for w in self._waiters if w[1] is not fut]

    async def can_async(
        self,
        action: str,
        subject: SubjectInput,
        field: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
    ) -> bool:
        await self.wait_ready(timeout)
        return self.can(action, subject, field)

    async def cannot_async(
        self,
        action: str,
        subject: SubjectInput,
        field: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
    ) -> bool:
        return not await self.can_async(action, subject, field, timeout=timeout)

    # ----------------------------------------------------------- subscribers

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* (no arguments) after every update/clear.

        Returns a function that removes the listener.
        """
        with self._listeners_lock:
            self._listeners = self._listeners + (listener,)

        def _unsubscribe() -> None:
            self.unsubscribe(listener)

        return _unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        with self._listeners_lock:
            items = list(self._listeners)
            for i, existing in enumerate(items):
                if existing is listener:
                    del items[i]
                    break
            self._listeners = tuple(items)

    def watch(
        self,
        action: str,
        subject: SubjectInput,
        callback: Callable[[PermissionChange], Any],
    ) -> Callable[[], None]:
        """Call *callback* whenever the answer to ``can(action, subject)`` flips."""
        subj = as_subject(subject)
        last = {"value": self._ability.can(action, subj)}

        def _on_change() -> None:
            current = self._ability.can(action, subj)
            previous = last["value"]
            if current == previous:
                return
            last["value"] = current
            callback(
                PermissionChange(
                    action=action,
                    subject_type=subject_type_of(subj),
                    previous=previous,
                    current=current,
                )
            )

        return self.subscribe(_on_change)

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                fire_and_forget(listener())
            except Exception:
                logger.exception("ABACX: permission listener failed")

    def _wake_waiters(self) -> None:
        with self._listeners_lock:
            waiters, self._waiters = self._waiters, []
        for loop, fut in waiters:
            try:
                loop.call_soon_threadsafe(_resolve, fut)
            except RuntimeError:
                # loop already closed; its waiter is gone with it
                pass

    # ------------------------------------------------------------ export/obs

    def to_json(self, *, indent: Optional[int] = None) -> str:
        return encode_json(self._ability.rules, indent=indent)

    def to_wire(self) -> List[Dict[str, Any]]:
        return encode(self._ability.rules)

    def _record(
        self,
        decision: Decision,
        action: str,
        subject: Any,
        field: Optional[str],
        duration: float,
    ) -> None:
        labels = {"decision": decision.effect}
        if self.metrics is not None:
            try:
                self.metrics.inc("abacx_decisions_total", labels)
                observe = getattr(self.metrics, "observe", None)
                if observe is not None:
                    observe("abacx_decision_seconds", duration, labels)
            except Exception:
                logger.exception("ABACX: metrics sink failed")
        if self.logger_sink is not None:
            payload: Dict[str, Any] = {
                "decision": decision.effect,
                "allowed": decision.allowed,
                "action": action,
                "subject": _describe(subject),
                "field": field,
                "rule_index": decision.rule_index,
                "reason": decision.reason,
            }
            try:
                fire_and_forget(self.logger_sink.log(payload))
            except Exception:
                logger.exception("ABACX: decision logger failed")

    def __repr__(self) -> str:
        state = "ready" if self.is_ready else "pending"
        return f"ReactiveAbility({state}, rules={len(self._ability)})"


def _resolve(fut: "asyncio.Future[None]") -> None:
    if not fut.done():
        fut.set_result(None)


def _describe(subject: Any) -> Dict[str, Any]:
    if isinstance(subject, str):
        return {"type": subject}
    out: Dict[str, Any] = {"type": subject_type_of(subject)}
    sid = getattr(subject, "id", None)
    if sid is not None:
        out["id"] = sid
    attrs = getattr(subject, "attrs", None)
    if isinstance(attrs, dict):
        out["attrs"] = dict(attrs)
    return out
