"""Tests for the injectable clock."""

from datetime import date, datetime, timedelta, timezone

from io_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:

    def test_fixed_until_advanced(self):
        clock = DeterministicClock(datetime(2026, 2, 1, 12, tzinfo=timezone.utc))
        assert clock.now() == clock.now()
        clock.advance(60)
        assert clock.now() == datetime(2026, 2, 1, 12, 1, tzinfo=timezone.utc)

    def test_tick(self):
        clock = DeterministicClock()
        start = clock.now()
        assert clock.tick() == start + timedelta(seconds=1)

    def test_today_is_utc_date(self):
        late = datetime(2026, 2, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        clock = DeterministicClock(late)
        assert clock.today() == date(2026, 2, 2)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(100)
        target = datetime(2030, 1, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target


class TestSystemClock:

    def test_now_is_aware(self):
        assert SystemClock().now().tzinfo is not None
