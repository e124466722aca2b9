"""Process entry point wiring logging, the database, and the package service."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from exam_allocator.config import settings
from exam_allocator.core.database import close_db, init_db
from exam_allocator.core.logging import setup_logging
from exam_allocator.services.package_allocation import PackageAllocationService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan() -> AsyncGenerator[PackageAllocationService, None]:
    """Run the allocator for the lifetime of the block."""
    setup_logging()

    logger.info(
        "Starting ExamAllocator",
        extra={
            "environment": settings.environment,
            "version": settings.app_version,
            "max_overlap_percent": settings.allocation_max_overlap_percent,
            "min_fresh_percent": settings.allocation_min_fresh_percent,
            "lock_timeout_seconds": settings.allocation_lock_timeout_seconds,
        },
    )

    if settings.environment == "development":
        await init_db()
        logger.info("Development database initialized")

    try:
        yield PackageAllocationService()
    finally:
        logger.info("Shutting down ExamAllocator")
        await close_db()
