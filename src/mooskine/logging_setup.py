# src/mooskine/logging_setup.py

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

# Loggers that fire on every tick or background job; on the console they only
# matter once something goes wrong.
_QUIET_ON_CONSOLE: dict[str, int] = {
    "mooskine.store.autosave": logging.WARNING,
    "mooskine.store.domains": logging.WARNING,
    "mooskine.store.context": logging.WARNING,
    "mooskine.live.live_query": logging.WARNING,
}


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console filter for the REPL:
    - mooskine logs pass, except the per-tick / per-save chatter listed above
    - captured Python warnings ('py.warnings') and third-party loggers only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("mooskine."):
            threshold = _QUIET_ON_CONSOLE.get(name)
            return threshold is None or record.levelno >= threshold

        return record.levelno >= logging.ERROR


def level_from_name(name: str, default: int = logging.INFO) -> int:
    """'debug' -> logging.DEBUG; unknown names fall back to default."""
    level = logging.getLevelName(str(name).strip().upper())
    return level if isinstance(level, int) else default


def setup_logging(
    *,
    log_dir: str | Path = ".local/mooskine",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 2_000_000,
    backup_count: int = 3,
) -> Path:
    """
    Configure root logging once, before the store opens:
    - stderr handler, filtered for interactive use
    - rotating file handler with everything (swallowed commit errors and
      their tracebacks end up only here)

    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "mooskine.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    # Thread name tells foreground (MainThread) from background work.
    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return log_file
