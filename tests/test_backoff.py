"""Tests for the retry backoff schedule."""

from datetime import timedelta

import pytest

from hookline.webhooks.backoff import calculate_backoff

MINUTE = timedelta(minutes=1)
DAY = timedelta(hours=24)


class TestCalculateBackoff:
    @pytest.mark.parametrize(
        ("attempt", "minutes"),
        [(1, 1), (2, 2), (3, 4), (4, 8), (5, 16)],
    )
    def test_doubles_per_attempt(self, attempt, minutes):
        assert calculate_backoff(attempt, MINUTE, DAY) == timedelta(minutes=minutes)

    def test_capped_at_maximum(self):
        assert calculate_backoff(20, MINUTE, DAY) == DAY

    def test_zero_and_negative_treated_as_first(self):
        assert calculate_backoff(0, MINUTE, DAY) == MINUTE
        assert calculate_backoff(-3, MINUTE, DAY) == MINUTE

    def test_huge_attempt_saturates(self):
        assert calculate_backoff(10_000, MINUTE, DAY) == DAY
        assert calculate_backoff(64, MINUTE, DAY) == DAY

    def test_never_decreases(self):
        delays = [calculate_backoff(n, MINUTE, DAY) for n in range(1, 40)]
        assert delays == sorted(delays)

    def test_custom_initial(self):
        assert calculate_backoff(3, timedelta(seconds=5), timedelta(seconds=60)) == timedelta(
            seconds=20
        )
