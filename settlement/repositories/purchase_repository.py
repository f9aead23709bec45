"""
Purchase repository.

Read-only access to purchases for the settlement core.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.models.purchase import Purchase
from settlement.repositories.base import BaseRepository


class PurchaseRepository(BaseRepository[Purchase]):
    """Purchase repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize purchase repository."""
        super().__init__(Purchase, session)

    async def get_current_status(self, purchase_id: int) -> str | None:
        """
        Read the purchase status straight from the database.

        Bypasses the identity map so a status changed by the purchase
        workflow after the schedule was loaded is observed.

        Args:
            purchase_id: Purchase ID

        Returns:
            Status string or None if the purchase does not exist
        """
        stmt = select(Purchase.status).where(Purchase.id == purchase_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
