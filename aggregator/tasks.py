from __future__ import annotations

import logging

from celery import shared_task

from .services import get_engine

logger = logging.getLogger(__name__)


@shared_task
def sweep_forecast_cache() -> int:
    """Evict expired forecast entries tracked by this worker's engine."""

    evicted = get_engine().cache.sweep()
    logger.info("aggregator.cache.sweep.task evicted=%s", evicted)
    return evicted
