# src/mooskine/store/autosave.py

from __future__ import annotations

"""
Autosave pump.

A small loop on the foreground domain that:
- checks whether the foreground context has pending changes,
- commits them through Store.save() (failures are logged, never raised),
- sleeps for the interval and repeats until stopped.

The running asyncio task is the timer handle: stop() cancels it, and
Store.close() always calls stop().
"""

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .controller import Store

logger = logging.getLogger(__name__)


class AutosavePump:
    def __init__(self, store: Store) -> None:
        self._store = store
        self._task: asyncio.Task[None] | None = None
        self.interval: float | None = None
        self.tick_count = 0
        self.commit_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval: float) -> bool:
        """
        Start (or restart) the loop. The first check runs immediately.

        interval <= 0 is a configuration error: logged, nothing scheduled.
        """
        if interval <= 0:
            logger.warning("Cannot set non-positive autosave interval (%s); autosave not scheduled", interval)
            return False

        domain = self._store.foreground_domain
        if not domain.is_current():
            raise RuntimeError("AutosavePump.start() must be called on the foreground domain")

        self.stop()
        self.interval = float(interval)
        self._task = domain.loop.create_task(self._run(self.interval), name=f"{self._store.name}-autosave")
        logger.info("Autosave every %.1fs store=%s", self.interval, self._store.name)
        return True

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Autosave stopped store=%s", self._store.name)

    def tick(self) -> bool:
        """One check. Returns True if a commit was attempted and succeeded."""
        self.tick_count += 1
        context = self._store.foreground_context
        if not context.has_changes:
            return False

        logger.debug("Autosaving store=%s", self._store.name)
        ok = self._store.save(context)
        if ok:
            self.commit_count += 1
        return ok

    async def _run(self, interval: float) -> None:
        while True:
            try:
                self.tick()
            except Exception:
                # Keep the loop alive; the next tick retries.
                logger.exception("Autosave tick failed store=%s", self._store.name)
            await asyncio.sleep(interval)
