"""
Purchase model.

Read view of purchases owned by the purchase/payment workflow. The
settlement core only reads the status and the principal; it never changes
a purchase.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement.models.base import Base
from settlement.models.enums import SETTLEABLE_PURCHASE_STATUSES, PurchaseStatus
from settlement.models.types import MoneyType


class Purchase(Base):
    """Purchase model - confirmed package purchases."""

    __tablename__ = "purchases"
    __table_args__ = (
        CheckConstraint(
            'principal_amount >= 0',
            name='check_purchase_principal_non_negative'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Buyer
    user_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )

    principal_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )

    # pending_payment, payment_submitted, payment_confirmed,
    # active, completed, cancelled, expired
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=PurchaseStatus.PENDING_PAYMENT.value,
        index=True,
    )

    payment_confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Purchase(id={self.id}, user_id={self.user_id}, "
            f"principal={self.principal_amount}, status={self.status})>"
        )

    @property
    def is_settleable(self) -> bool:
        """Whether schedules derived from this purchase may be paid out."""
        return self.status in SETTLEABLE_PURCHASE_STATUSES

    @property
    def confirmed_at(self) -> datetime | None:
        """Effective confirmation moment used to anchor schedules."""
        return self.payment_confirmed_at or self.activated_at
