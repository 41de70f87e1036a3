from __future__ import annotations

import json
import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Optional

from ..codec import DecodeError, decode
from ..core.ports import PermissionSource
from ..core.reactive import ReactiveAbility

logger = logging.getLogger("abacx.storage")

MIN_SLEEP = 0.2


@dataclass
class Backoff:
    """Exponential backoff window with symmetric jitter."""

    minimum: float = 2.0
    maximum: float = 30.0
    jitter_ratio: float = 0.15
    current: float = 0.0

    def __post_init__(self) -> None:
        self.current = self.minimum

    def reset(self) -> None:
        self.current = self.minimum

    def next_delay(self) -> float:
        self.current = min(self.maximum, max(self.minimum, self.current * 2.0))
        return max(MIN_SLEEP, jittered(self.current, self.jitter_ratio))


def jittered(value: float, ratio: float) -> float:
    return value + value * ratio * random.uniform(-1.0, 1.0)


class HotReloader:
    """
    Keeps a ReactiveAbility in sync with a PermissionSource.

    Each check asks the source for its ETag and only loads, decodes and installs
    the document when the ETag differs from the last installed one (a source
    without ETags is loaded every time). A failing check leaves the installed
    rules untouched and suppresses further checks for an exponentially growing,
    jittered window so a broken file does not flood the log.

    ``start()`` runs the checks on a background thread; ``check_and_reload()``
    can be called directly, e.g. from a scheduler or a file watcher.
    """

    def __init__(
        self,
        ability: ReactiveAbility,
        source: PermissionSource,
        *,
        poll_interval: Optional[float] = 5.0,
        backoff_min: float = 2.0,
        backoff_max: float = 30.0,
        jitter_ratio: float = 0.15,
        thread_daemon: bool = True,
    ) -> None:
        self.ability = ability
        self.source = source
        self.poll_interval = poll_interval
        self.jitter_ratio = float(jitter_ratio)
        self.thread_daemon = bool(thread_daemon)
        self._backoff = Backoff(float(backoff_min), float(backoff_max), self.jitter_ratio)

        self._last_etag: Optional[str] = None
        self._last_reload_at: Optional[float] = None
        self._last_error: Optional[Exception] = None
        self._suppress_until = 0.0

        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def check_and_reload(self, *, force: bool = False) -> bool:
        """Install the source's document if it changed.

        ``force`` ignores both the ETag and the error backoff window.
        Returns True when new rules were installed.
        """
        with self._lock:
            now = time.time()
            if now < self._suppress_until and not force:
                return False
            try:
                etag = self.source.etag()
                if etag is not None and etag == self._last_etag and not force:
                    return False
                self.ability.update(decode(self.source.load()))
            except FileNotFoundError as e:
                self._failed(now, e)
                logger.warning("ABACX: permissions not found: %s", self._describe_source())
                return False
            except (json.JSONDecodeError, DecodeError) as e:
                self._failed(now, e)
                logger.error(
                    "ABACX: invalid permission document in %s: %s", self._describe_source(), e
                )
                return False
            except Exception as e:
                self._failed(now, e)
                logger.exception("ABACX: permission reload from %s failed", self._describe_source())
                return False

            self._last_etag = etag
            self._last_reload_at = now
            self._last_error = None
            self._suppress_until = 0.0
            self._backoff.reset()
            logger.info("ABACX: permissions reloaded from %s", self._describe_source())
            return True

    def start(self, interval: Optional[float] = None, *, initial_load: bool = True) -> None:
        """Start background polling every *interval* seconds (default: poll_interval or 5s)."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            if initial_load:
                self.check_and_reload()
            period = float(interval if interval is not None else (self.poll_interval or 5.0))
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._poll, args=(period,), name="abacx-reloader", daemon=self.thread_daemon
            )
            self._thread.start()

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop.set()
        thread.join(timeout=timeout)
        with self._lock:
            if not thread.is_alive():
                self._thread = None

    @property
    def last_etag(self) -> Optional[str]:
        with self._lock:
            return self._last_etag

    @property
    def last_reload_at(self) -> Optional[float]:
        with self._lock:
            return self._last_reload_at

    @property
    def last_error(self) -> Optional[Exception]:
        with self._lock:
            return self._last_error

    @property
    def suppressed_until(self) -> float:
        with self._lock:
            return self._suppress_until

    def _describe_source(self) -> str:
        path = getattr(self.source, "path", None)
        return path if isinstance(path, str) else type(self.source).__name__

    def _failed(self, now: float, err: Exception) -> None:
        self._last_error = err
        self._suppress_until = now + self._backoff.next_delay()

    def _poll(self, period: float) -> None:
        while not self._stop.is_set():
            try:
                self.check_and_reload()
            except Exception:  # pragma: no cover
                logger.exception("ABACX: reloader loop error")
            delay = jittered(period, self.jitter_ratio)
            remaining = self.suppressed_until - time.time()
            if remaining > 0:
                delay = min(delay, remaining)
            self._stop.wait(max(MIN_SLEEP, delay))


__all__ = ["Backoff", "HotReloader"]
