from datetime import datetime, timedelta, timezone

from signing.services.reminders import reminder_threshold, warning_threshold

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestReminderThreshold:

    def test_nothing_before_first_interval(self):
        assert reminder_threshold(NOW - timedelta(days=2), NOW, 3) is None

    def test_window_number_grows_with_age(self):
        assert reminder_threshold(NOW - timedelta(days=3), NOW, 3) == 'reminder:1'
        assert reminder_threshold(NOW - timedelta(days=7), NOW, 3) == 'reminder:2'


class TestWarningThreshold:

    def test_outside_all_windows(self):
        assert warning_threshold(NOW + timedelta(days=10), NOW, [7, 2, 1]) is None

    def test_picks_tightest_window(self):
        assert warning_threshold(NOW + timedelta(days=6), NOW, [7, 2, 1]) == 7
        assert warning_threshold(NOW + timedelta(days=1, hours=12), NOW, [7, 2, 1]) == 2
        assert warning_threshold(NOW + timedelta(hours=3), NOW, [7, 2, 1]) == 1
