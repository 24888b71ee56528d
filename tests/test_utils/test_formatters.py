"""Tests for sync status formatting."""

from pipetrak.utils.formatters import format_relative_time, format_sync_status

NOW = 1_729_785_600_000


class TestFormatRelativeTime:
    def test_never(self):
        assert format_relative_time(None, NOW) == "never"

    def test_just_now(self):
        assert format_relative_time(NOW - 30_000, NOW) == "just now"

    def test_minutes(self):
        assert format_relative_time(NOW - 5 * 60_000, NOW) == "5 min ago"

    def test_hours(self):
        assert format_relative_time(NOW - 2 * 3_600_000, NOW) == "2 hr ago"

    def test_days(self):
        assert format_relative_time(NOW - 86_400_000, NOW) == "1 day ago"
        assert format_relative_time(NOW - 3 * 86_400_000, NOW) == "3 days ago"

    def test_future_clamped(self):
        assert format_relative_time(NOW + 60_000, NOW) == "just now"


class TestFormatSyncStatus:
    def test_all_synced(self):
        text = format_sync_status({"status": "idle", "pending_count": 0,
                                   "failed_count": 0,
                                   "last_sync_attempt": NOW}, NOW)
        assert text == "All changes synced · last attempt just now"

    def test_pending_and_failed(self):
        text = format_sync_status({"status": "error", "pending_count": 1,
                                   "failed_count": 2,
                                   "last_sync_attempt": None}, NOW)
        assert text == (
            "1 pending update · 2 failed · last sync had errors"
            " · last attempt never"
        )

    def test_syncing(self):
        text = format_sync_status({"status": "syncing", "pending_count": 3,
                                   "failed_count": 0,
                                   "last_sync_attempt": NOW}, NOW)
        assert text.startswith("Syncing 3 updates")
