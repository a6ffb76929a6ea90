"""Orchestrator boundary: time budget and optimistic-lock translation.

Every public leave operation runs inside the caller's transaction. The
``bounded`` decorator caps its wall-clock time and turns lost version
races into ``ConflictError``. On either failure the exception propagates,
so the request-scoped session rolls back and no partial ledger write is
ever committed.
"""

from __future__ import annotations

import asyncio
import functools
import logging

from sqlalchemy.orm.exc import StaleDataError

from leaveflow.common.exceptions import ConflictError, OperationTimeoutError
from leaveflow.config import settings

logger = logging.getLogger(__name__)


def bounded(timeout_setting: str = "OPERATION_TIMEOUT_SECONDS"):
    """Decorate an async operation with a settings-driven timeout."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            seconds = getattr(settings, timeout_setting)
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=seconds)
            except asyncio.TimeoutError:
                logger.warning("%s timed out after %ss", func.__qualname__, seconds)
                raise OperationTimeoutError(func.__name__, seconds) from None
            except StaleDataError as exc:
                logger.warning("%s lost a concurrent update: %s", func.__qualname__, exc)
                raise ConflictError() from exc

        return wrapper

    return decorator
