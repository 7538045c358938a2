"""Tests for the injectable clocks."""

from datetime import date, datetime, timedelta, timezone

from market_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:

    def test_default_time(self):
        clock = DeterministicClock()
        assert clock.now() == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert clock.today() == date(2024, 1, 1)

    def test_stable_until_advanced(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()
        clock.advance(30)
        assert clock.now().second == 30

    def test_advance_days(self):
        clock = DeterministicClock()
        clock.advance_days(31)
        assert clock.today() == date(2024, 2, 1)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(100)
        target = datetime(2024, 6, 30, 23, 0, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target

    def test_today_is_utc(self):
        sydney = timezone(timedelta(hours=10))
        clock = DeterministicClock(datetime(2024, 3, 1, 8, 0, tzinfo=sydney))
        assert clock.today() == date(2024, 2, 29)


class TestSystemClock:

    def test_timezone_aware(self):
        assert SystemClock().now().tzinfo is not None
