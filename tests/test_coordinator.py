"""Tests for the background retry coordinator."""

from unittest.mock import Mock

import pytest

from nutrisync.config import SyncSettings
from nutrisync.models import SyncStatus
from nutrisync.session import TrackerSession
from nutrisync.sync.coordinator import SyncCoordinator


class TestSyncCoordinator:
    """Tests for SyncCoordinator."""

    def setup_method(self):
        """Set up test fixtures."""
        self.engine = Mock()
        self.engine.is_closed = False
        self.engine.user_id = "alice"
        self.settings = SyncSettings()
        self.coordinator = SyncCoordinator(self.engine, self.settings)

    def teardown_method(self):
        """Clean up."""
        self.coordinator.stop()

    def test_retries_when_local_only(self):
        self.engine.status = SyncStatus.LOCAL_ONLY

        self.coordinator._retry_if_local_only()

        self.engine.resync.assert_called_once()

    @pytest.mark.parametrize("status", [SyncStatus.SYNCED, SyncStatus.SYNCING])
    def test_idle_when_not_local_only(self, status):
        self.engine.status = status

        self.coordinator._retry_if_local_only()

        self.engine.resync.assert_not_called()

    def test_idle_when_closed(self):
        self.engine.status = SyncStatus.LOCAL_ONLY
        self.engine.is_closed = True

        self.coordinator._retry_if_local_only()

        self.engine.resync.assert_not_called()

    def test_retry_error_is_logged_not_raised(self):
        self.engine.status = SyncStatus.LOCAL_ONLY
        self.engine.resync.side_effect = RuntimeError("boom")

        self.coordinator._retry_if_local_only()

    def test_start_schedules_retry_job(self):
        self.settings.retry_interval_seconds = 30

        self.coordinator.start()

        job = self.coordinator.scheduler.get_job(SyncCoordinator.RETRY_JOB_ID)
        assert job is not None
        assert job.trigger.interval.total_seconds() == 30

    def test_start_twice_keeps_one_job(self):
        self.coordinator.start()
        self.coordinator.start()

        assert len(self.coordinator.scheduler.get_jobs()) == 1

    def test_start_disabled(self):
        self.settings.background_retry = False

        self.coordinator.start()

        assert self.coordinator.scheduler.running is False


class TestSessionLifecycle:
    """The session starts and stops its coordinator."""

    def setup_method(self):
        """Set up test fixtures."""
        self.engine = Mock()
        self.coordinator = Mock()
        self.session = TrackerSession(self.engine, coordinator=self.coordinator)

    def test_start_runs_engine_then_coordinator(self):
        calls = Mock()
        calls.attach_mock(self.engine.start, "engine_start")
        calls.attach_mock(self.coordinator.start, "coordinator_start")

        self.session.start()

        assert [c[0] for c in calls.mock_calls] == ["engine_start", "coordinator_start"]

    def test_close_stops_coordinator_before_engine(self):
        calls = Mock()
        calls.attach_mock(self.coordinator.stop, "coordinator_stop")
        calls.attach_mock(self.engine.close, "engine_close")

        self.session.close()

        assert [c[0] for c in calls.mock_calls] == ["coordinator_stop", "engine_close"]

    def test_session_without_coordinator(self):
        session = TrackerSession(self.engine)

        session.start()
        session.close()

        self.engine.close.assert_called_once()
