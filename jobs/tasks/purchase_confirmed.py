"""
Purchase confirmed task.

Creates the settlement schedules of a purchase once the purchase
workflow has confirmed its payment.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import run_async
from jobs.broker import broker  # noqa: F401
from jobs.utils.database import task_session_maker
from settlement.config.settings import settings
from settlement.repositories.purchase_repository import PurchaseRepository
from settlement.services.rates import (
    RateConfig,
    RateConfigProvider,
    RedisRateConfigSource,
)
from settlement.services.schedule import PurchaseConfirmationHandler
from settlement.utils.exceptions import InvalidPurchaseStateError
from settlement.utils.redis_utils import get_redis_client


_rate_provider: RateConfigProvider | None = None


def get_rate_provider() -> RateConfigProvider:
    """Process-wide rate provider backed by Redis."""
    global _rate_provider
    if _rate_provider is None:
        _rate_provider = RateConfigProvider(
            RedisRateConfigSource(
                get_redis_client(), key=settings.rate_config_redis_key
            ),
            ttl_seconds=settings.rate_config_cache_ttl_seconds,
            defaults=RateConfig.from_settings(settings),
        )
    return _rate_provider


async def create_schedules_for_purchase(
    purchase_id: int,
    referrer_user_id: int | None = None,
    parent_user_id: int | None = None,
) -> list[int]:
    """
    Create the schedules of a confirmed purchase.

    Returns:
        IDs of the purchase's schedules
    """
    async with task_session_maker() as session:
        purchase = await PurchaseRepository(session).get_by_id(purchase_id)
        if purchase is None:
            raise InvalidPurchaseStateError(purchase_id, "purchase not found")
        if not purchase.is_settleable:
            raise InvalidPurchaseStateError(
                purchase_id, f"purchase is {purchase.status}"
            )

        handler = PurchaseConfirmationHandler(session, get_rate_provider())
        schedules = await handler.on_purchase_confirmed(
            purchase,
            referrer_user_id=referrer_user_id,
            parent_user_id=parent_user_id,
        )
        return [s.id for s in schedules]


@dramatiq.actor(max_retries=3, time_limit=60_000)
def handle_purchase_confirmed(
    purchase_id: int,
    referrer_user_id: int | None = None,
    parent_user_id: int | None = None,
) -> list[int] | None:
    """
    Create settlement schedules for a confirmed purchase.

    Invalid purchases are logged and not retried; any other error is
    retried by dramatiq. Replays are harmless.

    Args:
        purchase_id: Confirmed purchase
        referrer_user_id: Direct referrer (optional)
        parent_user_id: Referrer's upline (optional)
    """
    try:
        schedule_ids = run_async(
            create_schedules_for_purchase(
                purchase_id, referrer_user_id, parent_user_id
            )
        )
    except InvalidPurchaseStateError as e:
        logger.error(f"Schedules not created: {e}")
        return None

    logger.info(
        f"Purchase {purchase_id} has {len(schedule_ids)} schedules",
        extra={"purchase_id": purchase_id, "schedule_ids": schedule_ids},
    )
    return schedule_ids
