# src/mooskine/store/notifier.py

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

from ..errors import FatalError

logger = logging.getLogger(__name__)

EventT = TypeVar("EventT")


class Subscription:
    """
    Handle returned by ChangeNotifier.subscribe().

    Owned by the subscriber; cancel() (or leaving the `with` block) detaches the
    callback. Cancelling twice is harmless.
    """

    __slots__ = ("_notifier", "_token")

    def __init__(self, notifier: ChangeNotifier, token: int) -> None:
        self._notifier: ChangeNotifier | None = notifier
        self._token = token

    @property
    def active(self) -> bool:
        return self._notifier is not None

    def cancel(self) -> None:
        notifier, self._notifier = self._notifier, None
        if notifier is not None:
            notifier._unsubscribe(self._token)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.cancel()


class ChangeNotifier(Generic[EventT]):
    """
    Typed publish/subscribe.

    Callbacks run synchronously on the publishing thread, in subscription order.
    A failing subscriber is logged and skipped so one broken screen cannot stop
    the others from updating; FatalError is never swallowed.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._next_token = 0
        self._callbacks: dict[int, Callable[[EventT], None]] = {}

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def subscribe(self, callback: Callable[[EventT], None]) -> Subscription:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._callbacks[token] = callback
        return Subscription(self, token)

    def _unsubscribe(self, token: int) -> None:
        with self._lock:
            self._callbacks.pop(token, None)

    def publish(self, event: EventT) -> None:
        with self._lock:
            # Snapshot: callbacks may (un)subscribe while we deliver.
            callbacks = list(self._callbacks.items())

        for token, cb in callbacks:
            with self._lock:
                if token not in self._callbacks:
                    continue
            try:
                cb(event)
            except FatalError:
                raise
            except Exception:
                logger.exception("Subscriber failed notifier=%s", self.name or "?")
