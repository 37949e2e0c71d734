"""Explicit runtime state: a TTL read cache and a keyed call debouncer.

Both objects are owned by :class:`salesbook.core_logic.RuntimeContext`;
nothing here is a module-level singleton.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterable, Optional, TypeVar

from . import log


T = TypeVar("T")


@dataclass
class CacheEntry:
    """A cached value together with its freshness window and sheet dependencies."""

    value: Any
    stored_at: float
    ttl: float
    sheets: frozenset[str] = field(default_factory=frozenset)

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class ReadCache:
    """Time-boxed cache of read results keyed by operation signature.

    Entries may be served stale for up to ``ttl`` seconds after they were
    stored. Writers call :meth:`invalidate_sheets` after a successful persist;
    the invalidation is not transactional with the write.
    """

    def __init__(self, ttl: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl < 0:
            raise ValueError("Cache TTL cannot be negative")
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[CacheEntry]:
        """Return the live entry for ``key``, evicting it if it has expired."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_fresh(self._clock()):
                del self._entries[key]
                return None
            return entry

    def put(self, key: Hashable, value: Any, *, sheets: Iterable[str] = (), ttl: Optional[float] = None) -> CacheEntry:
        entry = CacheEntry(
            value=value,
            stored_at=self._clock(),
            ttl=self.ttl if ttl is None else ttl,
            sheets=frozenset(str(getattr(sheet, "value", sheet)) for sheet in sheets),
        )
        with self._lock:
            self._entries[key] = entry
        return entry

    def get_or_load(self, key: Hashable, loader: Callable[[], T], *, sheets: Iterable[str] = ()) -> T:
        """Return the cached value for ``key`` or compute and store it.

        Args:
            key (Hashable): Operation signature, e.g. ``("products", True)``.
            loader (Callable[[], T]): Produces the value on a miss.
            sheets (Iterable[str]): Sheets the value was read from.

        Returns:
            T: Cached or freshly loaded value.
        """

        entry = self.get(key)
        if entry is not None:
            log.debug("Cache hit for %r", key)
            return entry.value
        value = loader()
        if self.ttl > 0:
            self.put(key, value, sheets=sheets)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_sheets(self, *sheets: str) -> int:
        """Drop every entry that depends on any of ``sheets``.

        Returns:
            int: Number of entries removed.
        """

        names = {str(getattr(sheet, "value", sheet)) for sheet in sheets}
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.sheets & names]
            for key in stale:
                del self._entries[key]
        if stale:
            log.debug("Invalidated %d cache entr(y/ies) for %s", len(stale), sorted(names))
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class _PendingCall:
    timer: threading.Timer
    future: Future
    fn: Callable[..., Any]
    args: tuple
    kwargs: dict


class Debouncer:
    """Coalesce rapid repeated calls that share an operation key.

    :meth:`submit` schedules ``fn`` to run after ``window`` seconds. Submitting
    again under the same key before the window elapses cancels the superseded
    call, whose future is cancelled, and restarts the window. A call that has
    already started cannot be cancelled.
    """

    def __init__(self, window: float) -> None:
        if window < 0:
            raise ValueError("Debounce window cannot be negative")
        self.window = window
        self._pending: Dict[Hashable, _PendingCall] = {}
        self._lock = threading.Lock()

    def submit(self, key: Hashable, fn: Callable[..., T], *args: Any, **kwargs: Any) -> "Future[T]":
        """Schedule ``fn(*args, **kwargs)`` under ``key`` and return its future."""

        future: Future = Future()
        timer = threading.Timer(self.window, self._fire, args=(key, future))
        timer.daemon = True
        with self._lock:
            superseded = self._pending.pop(key, None)
            self._pending[key] = _PendingCall(timer, future, fn, args, kwargs)
        if superseded is not None:
            superseded.timer.cancel()
            superseded.future.cancel()
            log.debug("Debounced call %r superseded", key)
        timer.start()
        return future

    def pending(self) -> list[Hashable]:
        with self._lock:
            return list(self._pending)

    def flush(self, key: Optional[Hashable] = None) -> None:
        """Run pending calls immediately, all of them when ``key`` is ``None``."""

        with self._lock:
            keys = list(self._pending) if key is None else [key]
        for pending_key in keys:
            with self._lock:
                call = self._pending.get(pending_key)
            if call is None:
                continue
            call.timer.cancel()
            self._fire(pending_key, call.future)

    def cancel_all(self) -> int:
        """Cancel every pending call and return how many were cancelled."""

        with self._lock:
            calls = list(self._pending.values())
            self._pending.clear()
        for call in calls:
            call.timer.cancel()
            call.future.cancel()
        return len(calls)

    def _fire(self, key: Hashable, future: Future) -> None:
        with self._lock:
            call = self._pending.get(key)
            if call is None or call.future is not future:
                return
            del self._pending[key]
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = call.fn(*call.args, **call.kwargs)
        except Exception as exc:
            log.error("Debounced call %r failed: %s", key, exc)
            future.set_exception(exc)
        else:
            future.set_result(result)


__all__ = ["CacheEntry", "ReadCache", "Debouncer"]
