# src/mooskine/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState (opening the store on the event loop),
then runs the console REPL until /exit, EOF or Ctrl+C.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state
from ..config import Settings, get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import level_from_name, setup_logging

logger = logging.getLogger(__name__)


def _shutdown(state: AppState) -> None:
    """Close screens, flush pending edits, stop the store. No exceptions should escape."""
    for name, screen in list(state.screens.items()):
        try:
            screen.close()
        except Exception:
            logger.debug("Screen %s close failed.", name, exc_info=True)
    state.screens.clear()

    store = state.store
    if store.is_open:
        context = store.foreground_context
        if context.has_changes and not store.save(context):
            logger.warning("Unsaved changes were lost on exit.")
        store.close()


async def _run(settings: Settings) -> None:
    state = await create_initial_state(settings=settings)
    try:
        await run_console_loop(state)
    finally:
        _shutdown(state)


def main() -> None:
    settings = get_settings()

    log_file = setup_logging(log_dir=settings.data_dir, console_level=level_from_name(settings.log_level))
    logger.info("Starting %s (log file: %s)...", settings.app_name, log_file)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received, shutting down...")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
