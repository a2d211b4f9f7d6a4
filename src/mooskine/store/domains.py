# src/mooskine/store/domains.py

from __future__ import annotations

"""
Scheduling domains.

Every context is bound to one domain and may only be touched from inside it:
- ForegroundDomain: the asyncio event loop thread (UI, autosave, live queries)
- BackgroundDomain: one worker thread; work is queued and runs serially

Only ObjectIds and SavedChanges payloads travel between domains.
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_local = threading.local()


class Domain(Protocol):
    name: str

    def is_current(self) -> bool: ...
    def call_soon(self, fn: Callable[[], object]) -> None: ...
    def submit(self, fn: Callable[[], T]) -> Future[T]: ...


class ForegroundDomain:
    """Bound to the event loop (and its thread) that was running when the store opened."""

    name = "foreground"

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._thread_id = threading.get_ident()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def is_current(self) -> bool:
        return threading.get_ident() == self._thread_id

    def call_soon(self, fn: Callable[[], object]) -> None:
        if self.is_current():
            self._loop.call_soon(fn)
        else:
            self._loop.call_soon_threadsafe(fn)

    def submit(self, fn: Callable[[], T]) -> Future[T]:
        fut: Future[T] = Future()

        def run() -> None:
            if not fut.set_running_or_notify_cancel():
                return
            try:
                fut.set_result(fn())
            except Exception as e:
                logger.exception("Foreground work failed")
                fut.set_exception(e)

        self._loop.call_soon_threadsafe(run)
        return fut


class BackgroundDomain:
    """A private single-worker queue. Not cancellable once work has started."""

    name = "background"

    def __init__(self, *, thread_name_prefix: str = "mooskine-bg") -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=thread_name_prefix)
        self._closed = False

    def is_current(self) -> bool:
        return getattr(_local, "domain", None) is self

    def _run(self, fn: Callable[[], T]) -> T:
        _local.domain = self
        try:
            return fn()
        except Exception:
            logger.exception("Background work failed")
            raise
        finally:
            _local.domain = None

    def submit(self, fn: Callable[[], T]) -> Future[T]:
        if self._closed:
            raise RuntimeError("Background domain is shut down")
        return self._executor.submit(self._run, fn)

    def call_soon(self, fn: Callable[[], object]) -> None:
        self.submit(fn)

    def shutdown(self, *, wait: bool = True) -> None:
        if self._closed:
            return
        self._closed = True
        # Work already running finishes; queued work is dropped.
        self._executor.shutdown(wait=wait, cancel_futures=True)
