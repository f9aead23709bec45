"""
Purchase confirmation handler.

Inbound entry point of the settlement core: invoked by the purchase
workflow once per confirmation, and safe to invoke again for the same
purchase.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.models.enums import ScheduleKind
from settlement.models.purchase import Purchase
from settlement.models.schedule import Schedule
from settlement.services.rates import RateConfigProvider
from settlement.services.schedule.factory import ScheduleFactory
from settlement.utils.exceptions import DuplicateScheduleError


class PurchaseConfirmationHandler:
    """Creates all schedules owed for a confirmed purchase."""

    def __init__(
        self, session: AsyncSession, rate_provider: RateConfigProvider
    ) -> None:
        """Initialize handler."""
        self.session = session
        self.rate_provider = rate_provider
        self.factory = ScheduleFactory(session, rate_provider)

    async def on_purchase_confirmed(
        self,
        purchase: Purchase,
        referrer_user_id: int | None = None,
        parent_user_id: int | None = None,
    ) -> list[Schedule]:
        """
        Create BENEFIT and commission schedules for a purchase.

        Schedules that already exist are returned as they are, so a
        retried confirmation event never creates duplicates.

        Args:
            purchase: Confirmed purchase
            referrer_user_id: Direct referrer (None if absent)
            parent_user_id: Referrer's upline (None if absent)

        Returns:
            The purchase's schedules, created or pre-existing

        Raises:
            InvalidPurchaseStateError: Principal is missing or not positive
        """
        schedules: list[Schedule] = []
        created = 0

        try:
            try:
                schedules.append(
                    await self.factory.create_benefit_schedule(purchase)
                )
                created += 1
            except DuplicateScheduleError as e:
                schedules.append(e.existing)

            rates = await self.rate_provider.get()
            for kind, user_id in (
                (ScheduleKind.REFERRER, referrer_user_id),
                (ScheduleKind.PARENT, parent_user_id),
            ):
                if user_id is None:
                    continue
                try:
                    schedules.append(
                        await self.factory.create_commission_schedule(
                            purchase, kind, user_id, rates=rates
                        )
                    )
                    created += 1
                except DuplicateScheduleError as e:
                    schedules.append(e.existing)

            await self.session.commit()

        except Exception as e:
            await self.session.rollback()
            logger.error(
                f"Failed to create schedules for purchase {purchase.id}",
                extra={"purchase_id": purchase.id, "error": str(e)},
            )
            raise

        if created < len(schedules):
            logger.info(
                "Purchase confirmation replayed, existing schedules kept",
                extra={
                    "purchase_id": purchase.id,
                    "created": created,
                    "existing": len(schedules) - created,
                },
            )
        else:
            logger.info(
                "Schedules created for confirmed purchase",
                extra={"purchase_id": purchase.id, "created": created},
            )

        return schedules
