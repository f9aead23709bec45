"""
Dramatiq broker configuration.

Redis-based message broker for settlement sweeps and purchase
confirmation events.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from settlement.config.settings import settings
from settlement.utils.exceptions import (
    DuplicateScheduleError,
    ImmutableScheduleError,
    InvalidPurchaseStateError,
)
from settlement.utils.redis_utils import get_redis_url_masked

# Errors a retry cannot fix
PERMANENT_ERRORS = (
    InvalidPurchaseStateError,
    DuplicateScheduleError,
    ImmutableScheduleError,
)


def should_retry(retries_so_far: int, exception: Exception) -> bool:
    """Retry transient failures (database, Redis, ledger) up to the limit."""
    if isinstance(exception, PERMANENT_ERRORS):
        return False
    return retries_so_far < settings.task_max_retries


redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password if settings.redis_password else None,
    db=settings.redis_db,
)

# ShutdownNotifications: lets a long sweep notice worker shutdown
# CurrentMessage: access to the current message inside actors
redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())
redis_broker.add_middleware(
    Retries(
        min_backoff=1000,  # 1 second
        max_backoff=60000,  # 1 minute
        retry_when=should_retry,
    )
)

dramatiq.set_broker(redis_broker)

broker = redis_broker

logger.info(
    f"Settlement task broker ready on {get_redis_url_masked()}, "
    f"up to {settings.task_max_retries} retries per task"
)
