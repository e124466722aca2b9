"""Translation of raw database failures into storage errors."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from time import monotonic

from sqlalchemy.exc import SQLAlchemyError

from exam_allocator.core.db_retry import is_transient_connection_error
from exam_allocator.core.exceptions import StorageError

logger = logging.getLogger(__name__)


def translate_error(exc: Exception, *, operation_name: str) -> StorageError:
    """Wrap a driver/ORM failure in a StorageError."""
    if isinstance(exc, StorageError):
        return exc
    return StorageError(
        f"{operation_name} failed: {exc}",
        operation=operation_name,
        transient=is_transient_connection_error(exc),
    )


@asynccontextmanager
async def translate_storage_errors(operation_name: str) -> AsyncIterator[None]:
    """Run a block of store reads, re-raising SQLAlchemy failures as StorageError."""
    started = monotonic()
    try:
        yield
    except (SQLAlchemyError, OSError) as exc:
        translated = translate_error(exc, operation_name=operation_name)
        logger.warning(
            "DB read operation failed",
            extra={
                "operation": operation_name,
                "duration_ms": round((monotonic() - started) * 1000, 2),
                "transient": translated.transient,
            },
        )
        raise translated from exc
    logger.debug(
        "DB read operation completed",
        extra={
            "operation": operation_name,
            "duration_ms": round((monotonic() - started) * 1000, 2),
        },
    )
