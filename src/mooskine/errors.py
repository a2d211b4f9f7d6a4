# src/mooskine/errors.py

from __future__ import annotations

"""
Error taxonomy.

- FatalError: broken deployment or programmer error (store cannot open, schema
  cannot load, malformed live query, impossible section delta). Terminates.
- CommitError: a context failed to write its pending changes. Callers decide;
  Store.save() logs and swallows it.
- DomainViolationError: a context was touched from the wrong scheduling domain.
- ObjectNotFoundError: lookup by identity found nothing.
"""

import logging
from typing import NoReturn

logger = logging.getLogger(__name__)


class FatalError(SystemExit):
    """
    Unrecoverable condition.

    Derives from SystemExit so generic `except Exception` handlers never catch it:
    left alone it ends the process with the message on stderr.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class CommitError(Exception):
    """Pending changes could not be written to the backing store."""


class DomainViolationError(RuntimeError):
    """A context was accessed outside of the scheduling domain it is bound to."""


class ObjectNotFoundError(KeyError):
    """No persisted or pending object has the requested identity."""


class InvalidQueryError(ValueError):
    """A QuerySpec names fields its entity does not have."""


def fatal_error(message: str) -> NoReturn:
    logger.critical("Fatal: %s", message)
    raise FatalError(message)
