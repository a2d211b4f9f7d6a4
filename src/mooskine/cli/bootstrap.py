# src/mooskine/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- builds the Store from settings and opens it,
- wraps everything into AppState.
"""

from __future__ import annotations

import logging

from ..config import Settings, get_settings
from ..core.state import AppState
from ..store.controller import Store

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def create_store(settings: Settings) -> Store:
    """The one Store of the app; consumers get it from AppState, never from a global."""
    return Store(
        settings.store_name,
        data_dir=settings.data_dir,
        autosave_interval=settings.autosave_interval,
        check_domains=settings.check_domains,
    )


async def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings and open its store.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    Must run on the event loop that will own the foreground context.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = create_store(settings)
    await store.open(on_ready=lambda: logger.info("Store %r ready.", settings.store_name))
    return AppState(settings=settings, store=store)
