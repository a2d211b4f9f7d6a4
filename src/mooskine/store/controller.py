# src/mooskine/store/controller.py

from __future__ import annotations

"""
Store: the persistence stack of the app.

Owns the SQLite backend, the foreground context (event loop thread), the lazily
built background context (single worker thread), the merge wiring between them
and the autosave pump. Constructed explicitly by the composition root and passed
to every consumer; there is no module-level instance.
"""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from ..errors import CommitError, fatal_error
from .autosave import AutosavePump
from .backend import SQLiteBackend
from .context import ExecutionContext, MergePolicy, SavedChanges
from .domains import BackgroundDomain, ForegroundDomain
from .notifier import Subscription

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_INTERVAL = 30.0


class Store:
    def __init__(
        self,
        name: str,
        *,
        data_dir: str | Path = ".local/mooskine",
        autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL,
        check_domains: bool = True,
        foreground_policy: MergePolicy = MergePolicy.OBJECT_TRUMP,
        background_policy: MergePolicy = MergePolicy.OBJECT_TRUMP,
    ) -> None:
        self.name = name
        self.autosave_interval = autosave_interval
        self._backend = SQLiteBackend(Path(data_dir) / f"{name}.sqlite3")
        self._check_domains = check_domains
        self._foreground_policy = foreground_policy
        self._background_policy = background_policy

        self._fg_domain: ForegroundDomain | None = None
        self._bg_domain: BackgroundDomain | None = None
        self._foreground: ExecutionContext | None = None
        self._background: ExecutionContext | None = None
        self._subscriptions: list[Subscription] = []
        self._opened = False
        self._closed = False

        self.autosave = AutosavePump(self)

    @property
    def path(self) -> Path:
        return self._backend.path

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    async def open(self, on_ready: Callable[[], object] | None = None) -> None:
        """
        Create/load the backing file off the loop, then build the foreground context.

        Must be awaited on the loop that will act as the foreground domain.
        Failure to open the file or load its schema is fatal.
        on_ready runs exactly once, after the store is usable.
        """
        if self._opened:
            raise RuntimeError(f"Store {self.name!r} is already open")

        try:
            await asyncio.to_thread(self._backend.load)
        except Exception as e:
            fatal_error(f"Could not open store {self.name!r} at {self.path}: {e}")

        self._fg_domain = ForegroundDomain(asyncio.get_running_loop())
        self._foreground = ExecutionContext(
            name="foreground",
            backend=self._backend,
            domain=self._fg_domain,
            merge_policy=self._foreground_policy,
            check_domains=self._check_domains,
        )
        self._subscriptions.append(self._foreground.did_save.subscribe(self._foreground_did_save))
        self._opened = True
        logger.info("Store %r open at %s", self.name, self.path)

        self.autosave.start(self.autosave_interval)

        if on_ready is not None:
            on_ready()

    def _require_open(self) -> None:
        if not self._opened:
            raise RuntimeError(f"Store {self.name!r} is not open")
        if self._closed:
            raise RuntimeError(f"Store {self.name!r} is closed")

    @property
    def foreground_context(self) -> ExecutionContext:
        """The only context UI code may touch. Bound to the event loop thread."""
        self._require_open()
        assert self._foreground is not None
        return self._foreground

    @property
    def foreground_domain(self) -> ForegroundDomain:
        self._require_open()
        assert self._fg_domain is not None
        return self._fg_domain

    @property
    def background_context(self) -> ExecutionContext:
        """
        Context for slow work, bound to a private worker thread.

        Built on first access and cached: there is exactly one per store, so
        callers that need isolation from each other must not share it for
        long-running edits of the same objects.
        """
        self._require_open()
        if self._background is None:
            self._bg_domain = BackgroundDomain(thread_name_prefix=f"{self.name}-bg")
            self._background = ExecutionContext(
                name="background",
                backend=self._backend,
                domain=self._bg_domain,
                merge_policy=self._background_policy,
                check_domains=self._check_domains,
            )
            self._subscriptions.append(self._background.did_save.subscribe(self._background_did_save))
            logger.debug("Background context created for store %r", self.name)
        return self._background

    # ---- saving ----

    def save(self, context: ExecutionContext) -> bool:
        """
        Commit a context. Errors are logged, never raised.

        Returns False if the commit failed; the context keeps its pending
        changes (optimistic in-memory state) so a later save can retry.
        """
        try:
            context.save()
        except CommitError:
            logger.exception("Save failed store=%s context=%s", self.name, context.name)
            return False
        return True

    # ---- merge wiring ----

    def _foreground_did_save(self, saved: SavedChanges) -> None:
        background, domain = self._background, self._bg_domain
        if background is None or domain is None or self._closed:
            return
        domain.call_soon(lambda: background.merge_changes(saved))

    def _background_did_save(self, saved: SavedChanges) -> None:
        foreground, domain = self._foreground, self._fg_domain
        if foreground is None or domain is None or self._closed:
            return
        domain.call_soon(lambda: self._merge_into_foreground(saved))

    def _merge_into_foreground(self, saved: SavedChanges) -> None:
        if self._closed or self._foreground is None:
            return
        self._foreground.merge_changes(saved)

    # ---- teardown ----

    def close(self, *, wait: bool = True) -> None:
        """Stop autosave, detach merge wiring and stop the background worker. Safe to call twice."""
        if self._closed or not self._opened:
            self._closed = True
            return
        self._closed = True

        self.autosave.stop()
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions.clear()
        if self._bg_domain is not None:
            self._bg_domain.shutdown(wait=wait)
        logger.info("Store %r closed", self.name)
