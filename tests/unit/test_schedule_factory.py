"""
Tests for ScheduleFactory and PurchaseConfirmationHandler.

Repository lookups are patched; the session is an AsyncMock.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from settlement.models.enums import DayStatus, PurchaseStatus, ScheduleKind, ScheduleStatus
from settlement.repositories.schedule_repository import ScheduleRepository
from settlement.services.rates import RateConfig
from settlement.services.schedule import PurchaseConfirmationHandler, ScheduleFactory
from settlement.utils.exceptions import DuplicateScheduleError, InvalidPurchaseStateError


@pytest.fixture
def no_existing_schedules():
    """No schedule exists for any (purchase, kind, day_index)."""
    with patch.object(
        ScheduleRepository,
        "get_by_purchase_kind",
        new=AsyncMock(return_value=None),
    ) as lookup:
        yield lookup


@pytest.fixture
def factory(mock_session, rate_provider):
    return ScheduleFactory(mock_session, rate_provider)


class TestCreateBenefitSchedule:
    """Tests for create_benefit_schedule."""

    @pytest.mark.asyncio
    async def test_default_benefit_schedule(
        self, factory, make_purchase, mock_session, t0, no_existing_schedules
    ):
        purchase = make_purchase(principal=Decimal("1000"))

        schedule = await factory.create_benefit_schedule(purchase)

        assert schedule.kind == ScheduleKind.BENEFIT
        assert schedule.user_id == purchase.user_id
        assert schedule.purchase_id == purchase.id
        assert schedule.days == 8
        assert schedule.day_index is None
        assert schedule.daily_amount == Decimal("125.00000000")
        assert schedule.total_released == Decimal("0")
        assert schedule.days_released == 0
        assert schedule.schedule_status == ScheduleStatus.ACTIVE
        assert schedule.start_at == t0

        mock_session.add.assert_called_once_with(schedule)
        mock_session.flush.assert_awaited_once()
        mock_session.begin_nested.assert_called_once()

    @pytest.mark.asyncio
    async def test_day_records_dense_and_pending(
        self, factory, make_purchase, t0, no_existing_schedules
    ):
        schedule = await factory.create_benefit_schedule(make_purchase())

        assert [r.day for r in schedule.day_records] == list(range(8))
        assert all(r.status == DayStatus.PENDING for r in schedule.day_records)
        assert schedule.day_records[0].scheduled_date == t0 + timedelta(days=1)
        assert schedule.day_records[7].scheduled_date == t0 + timedelta(days=8)

    @pytest.mark.asyncio
    async def test_uses_configured_rates(
        self, mock_session, make_purchase, no_existing_schedules
    ):
        provider = MagicMock()
        provider.get = AsyncMock(
            return_value=RateConfig(benefit_daily_rate=Decimal("0.05"), benefit_days=20)
        )
        factory = ScheduleFactory(mock_session, provider)

        schedule = await factory.create_benefit_schedule(make_purchase())

        assert schedule.days == 20
        assert len(schedule.day_records) == 20
        assert schedule.daily_amount == Decimal("50.00000000")

    @pytest.mark.asyncio
    async def test_anchor_falls_back_to_now(
        self, factory, make_purchase, no_existing_schedules
    ):
        purchase = make_purchase(confirmed_at=None)

        schedule = await factory.create_benefit_schedule(purchase)

        assert schedule.start_at is not None
        assert schedule.start_at.tzinfo is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("principal", [Decimal("0"), Decimal("-5"), None])
    async def test_invalid_principal(
        self, factory, make_purchase, mock_session, principal
    ):
        purchase = make_purchase(principal=principal)

        with pytest.raises(InvalidPurchaseStateError):
            await factory.create_benefit_schedule(purchase)

        mock_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_detected_by_lookup(
        self, factory, make_purchase, mock_session
    ):
        existing = MagicMock(purchase_id=1, kind="BENEFIT", day_index=None)
        with patch.object(
            ScheduleRepository,
            "get_by_purchase_kind",
            new=AsyncMock(return_value=existing),
        ):
            with pytest.raises(DuplicateScheduleError) as exc_info:
                await factory.create_benefit_schedule(make_purchase())

        assert exc_info.value.existing is existing
        mock_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_racing_insert_reported_as_duplicate(
        self, factory, make_purchase, mock_session
    ):
        existing = MagicMock(purchase_id=1, kind="BENEFIT", day_index=None)
        mock_session.flush = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("unique violation"))
        )
        with patch.object(
            ScheduleRepository,
            "get_by_purchase_kind",
            new=AsyncMock(side_effect=[None, existing]),
        ):
            with pytest.raises(DuplicateScheduleError) as exc_info:
                await factory.create_benefit_schedule(make_purchase())

        assert exc_info.value.existing is existing

    @pytest.mark.asyncio
    async def test_other_integrity_errors_propagate(
        self, factory, make_purchase, mock_session, no_existing_schedules
    ):
        mock_session.flush = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("fk violation"))
        )

        with pytest.raises(IntegrityError):
            await factory.create_benefit_schedule(make_purchase())


class TestCreateCommissionSchedules:
    """Tests for create_commission_schedules."""

    @pytest.mark.asyncio
    async def test_referrer_and_parent(
        self, factory, make_purchase, t0, no_existing_schedules
    ):
        schedules = await factory.create_commission_schedules(
            make_purchase(), referrer_user_id=200, parent_user_id=300
        )

        referrer, parent = schedules
        assert referrer.kind == ScheduleKind.REFERRER
        assert referrer.user_id == 200
        assert referrer.days == 1
        assert referrer.day_index == 8
        assert referrer.daily_amount == Decimal("100.00000000")
        assert referrer.day_records[0].scheduled_date == t0 + timedelta(days=8)

        assert parent.kind == ScheduleKind.PARENT
        assert parent.user_id == 300
        assert parent.day_index == 16
        assert parent.daily_amount == Decimal("100.00000000")
        assert parent.day_records[0].scheduled_date == t0 + timedelta(days=16)

    @pytest.mark.asyncio
    async def test_absent_upline_creates_nothing(
        self, factory, make_purchase, mock_session, no_existing_schedules
    ):
        schedules = await factory.create_commission_schedules(make_purchase())

        assert schedules == []
        mock_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_referrer_only(
        self, factory, make_purchase, no_existing_schedules
    ):
        schedules = await factory.create_commission_schedules(
            make_purchase(), referrer_user_id=200
        )

        assert [s.kind for s in schedules] == [ScheduleKind.REFERRER]

    @pytest.mark.asyncio
    async def test_lookup_uses_day_index(
        self, factory, make_purchase, no_existing_schedules
    ):
        await factory.create_commission_schedules(
            make_purchase(), referrer_user_id=200
        )

        no_existing_schedules.assert_awaited_once_with(1, ScheduleKind.REFERRER, 8)

    @pytest.mark.asyncio
    async def test_benefit_kind_rejected(self, factory, make_purchase):
        with pytest.raises(ValueError):
            await factory.create_commission_schedule(
                make_purchase(), ScheduleKind.BENEFIT, 200
            )


class TestPurchaseConfirmationHandler:
    """Tests for on_purchase_confirmed."""

    @pytest.mark.asyncio
    async def test_creates_all_schedules_and_commits_once(
        self, mock_session, rate_provider, make_purchase, no_existing_schedules
    ):
        handler = PurchaseConfirmationHandler(mock_session, rate_provider)

        schedules = await handler.on_purchase_confirmed(
            make_purchase(), referrer_user_id=200, parent_user_id=300
        )

        assert [s.kind for s in schedules] == [
            ScheduleKind.BENEFIT,
            ScheduleKind.REFERRER,
            ScheduleKind.PARENT,
        ]
        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replay_returns_existing(
        self, mock_session, rate_provider, make_purchase
    ):
        existing_benefit = MagicMock(purchase_id=1, kind="BENEFIT", day_index=None)
        existing_referrer = MagicMock(purchase_id=1, kind="REFERRER", day_index=8)
        handler = PurchaseConfirmationHandler(mock_session, rate_provider)

        with patch.object(
            ScheduleRepository,
            "get_by_purchase_kind",
            new=AsyncMock(side_effect=[existing_benefit, existing_referrer]),
        ):
            schedules = await handler.on_purchase_confirmed(
                make_purchase(), referrer_user_id=200
            )

        assert schedules == [existing_benefit, existing_referrer]
        mock_session.add.assert_not_called()
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_purchase_rolls_back(
        self, mock_session, rate_provider, make_purchase
    ):
        handler = PurchaseConfirmationHandler(mock_session, rate_provider)
        purchase = make_purchase(
            principal=Decimal("0"), status=PurchaseStatus.PAYMENT_CONFIRMED
        )

        with pytest.raises(InvalidPurchaseStateError):
            await handler.on_purchase_confirmed(purchase)

        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_commit_error_with_braces_propagates(
        self, mock_session, rate_provider, make_purchase, no_existing_schedules
    ):
        mock_session.commit.side_effect = RuntimeError('constraint {"uq": 1} violated')
        handler = PurchaseConfirmationHandler(mock_session, rate_provider)

        with pytest.raises(RuntimeError, match="constraint"):
            await handler.on_purchase_confirmed(make_purchase())

        mock_session.rollback.assert_awaited_once()
