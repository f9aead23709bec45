"""Tests for the task retry policy."""

from unittest.mock import MagicMock

import pytest

from jobs.broker import should_retry
from settlement.config.settings import settings
from settlement.utils.exceptions import (
    DuplicateScheduleError,
    InvalidPurchaseStateError,
    SweepAbortedError,
)


@pytest.mark.parametrize(
    "exception",
    [
        InvalidPurchaseStateError(5, "purchase not found"),
        DuplicateScheduleError(MagicMock(purchase_id=1, kind="BENEFIT", day_index=None)),
    ],
)
def test_permanent_errors_not_retried(exception):
    assert should_retry(0, exception) is False


@pytest.mark.parametrize(
    "exception",
    [SweepAbortedError("Candidate selection failed"), ConnectionError("reset")],
)
def test_transient_errors_retried(exception):
    assert should_retry(0, exception) is True


def test_retry_limit(monkeypatch):
    monkeypatch.setattr(settings, "task_max_retries", 2)

    assert should_retry(1, ConnectionError("reset")) is True
    assert should_retry(2, ConnectionError("reset")) is False
