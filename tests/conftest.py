# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio

from mooskine.core.state import AppState
from mooskine.store.controller import Store


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap helpers.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment and any local .env.
    """
    return SimpleNamespace(
        app_name="mooskine-test",
        log_level="DEBUG",
        # Paths (tmp per test run)
        data_dir=tmp_path / "data",
        store_name="Mooskine",
        # Autosave is driven by hand in tests (tick()), so keep the timer far away.
        autosave_interval=3600.0,
        transform_delay=0.0,
        check_domains=True,
    )


@pytest_asyncio.fixture()
async def store(tmp_path: Path):
    """
    An open Store bound to the test's event loop.

    Real SQLite on disk: persistence and the two-context merge are what we
    want to test, so nothing here is faked.
    """
    s = Store("Mooskine", data_dir=tmp_path / "data", autosave_interval=3600.0)
    await s.open()
    try:
        yield s
    finally:
        s.close()


@pytest_asyncio.fixture()
async def state(settings: SimpleNamespace, store: Store) -> AppState:
    return AppState(settings=settings, store=store)
