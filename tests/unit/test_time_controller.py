"""Tests for TimeController - the engine's clock."""

from datetime import datetime, timedelta, timezone

import pytest

from billing_engine.services.time_controller import TimeController


@pytest.fixture
def start():
    return datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def time_controller(start):
    """Clock frozen at the start of 2026."""
    return TimeController(start_time=start)


class TestFrozenClock:
    """Test a clock frozen at a fixed instant."""

    def test_now_is_start(self, time_controller, start):
        assert time_controller.is_frozen
        assert time_controller.now() == start
        assert time_controller.now() == time_controller.now()

    def test_millis(self, time_controller, start):
        assert time_controller.get_current_time_millis() == int(start.timestamp() * 1000)

    def test_naive_start_is_treated_as_utc(self):
        clock = TimeController(start_time=datetime(2026, 1, 1))
        assert clock.now().tzinfo is not None
        assert clock.now() == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_advance_time(self, time_controller, start):
        """Test advancing days, hours and minutes."""
        result = time_controller.advance_time(days=8, hours=2, minutes=30)

        assert time_controller.now() == start + timedelta(days=8, hours=2, minutes=30)
        assert result["old_time"] == start.isoformat()

    def test_advance_time_rejects_negative(self, time_controller):
        with pytest.raises(ValueError):
            time_controller.advance_time(days=-1)

    def test_set_time_forward(self, time_controller, start):
        target = start + timedelta(days=40)

        time_controller.set_time(target)

        assert time_controller.now() == target

    def test_set_time_backwards_raises(self, time_controller, start):
        with pytest.raises(ValueError, match="backwards"):
            time_controller.set_time(start - timedelta(seconds=1))


class TestRealClock:
    """Test the default real-time clock."""

    def test_now_is_close_to_wall_clock(self):
        clock = TimeController()
        delta = abs(clock.now() - datetime.now(timezone.utc))
        assert delta < timedelta(seconds=5)

    def test_offset_applies_to_real_time(self):
        clock = TimeController()
        clock.advance_time(days=10)
        expected = datetime.now(timezone.utc) + timedelta(days=10)
        assert abs(clock.now() - expected) < timedelta(seconds=5)

    def test_reset_time_unfreezes(self, time_controller):
        time_controller.advance_time(days=3)

        time_controller.reset_time()

        assert not time_controller.is_frozen
        assert abs(time_controller.now() - datetime.now(timezone.utc)) < timedelta(seconds=5)
