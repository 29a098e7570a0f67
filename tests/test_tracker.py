"""
Tests for the carbon tracker composition root.
"""

import os
from datetime import datetime

import pytest

from conftest import usage_entry, write_transcript
from ai_carbon_tracker.config.loader import TrackerConfig
from ai_carbon_tracker.core.milestones import TierChanged, WaypointCrossed
from ai_carbon_tracker.core.tracker import CarbonTracker
from ai_carbon_tracker.storage.models import UsageRecord


def make_record(source_id, input_tokens, output_tokens=0):
    return UsageRecord(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        source_id=source_id,
        timestamp=datetime(2024, 1, 1)
    )


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def make_tracker(source_dir, repository, scheduler, notifications):
    def _make(**overrides):
        values = dict(source_dirs=(source_dir,), emission_factor=0.0004)
        values.update(overrides)
        return CarbonTracker(
            config=TrackerConfig(**values),
            repository=repository,
            scheduler=scheduler,
            notifier=lambda message, emoji: notifications.append((message, emoji))
        )
    return _make


class TestIngest:
    """Test usage flows through accumulation and milestone dispatch."""

    def test_ingest_updates_totals(self, make_tracker):
        tracker = make_tracker()
        tracker.ingest(make_record("msg_1", 1000, 500))

        stats = tracker.get_stats()
        assert stats.total_tokens == 1500
        assert stats.request_count == 1
        assert stats.total_emitted_mass_kg == pytest.approx(0.0006)

    def test_no_notification_without_crossing(self, make_tracker, notifications):
        tracker = make_tracker()
        assert tracker.ingest(make_record("msg_1", 1000)) == []
        assert notifications == []

    def test_large_update_dispatches_every_crossing(self, make_tracker, notifications):
        tracker = make_tracker(emission_factor=1.0)
        # 0.02 kg first, then jump to 0.45 kg
        tracker.ingest(make_record("msg_1", 20))
        notifications.clear()

        events = tracker.ingest(make_record("msg_2", 430))

        assert [type(e) for e in events] == [WaypointCrossed] * 4 + [TierChanged]
        assert len(notifications) == 5
        assert notifications[0] == ("You've emitted as much CO₂ as sending 50 emails!", "📧")
        assert notifications[-1][1] == "🍳"

    def test_works_without_notifier(self, source_dir, repository, scheduler):
        tracker = CarbonTracker(
            config=TrackerConfig(source_dirs=(source_dir,)),
            repository=repository,
            scheduler=scheduler
        )
        events = tracker.ingest(make_record("msg_1", 50_000))
        assert len(events) == 1

    def test_failing_notifier_does_not_recount(self, source_dir, repository, scheduler):
        write_transcript(source_dir, "s1", "a.jsonl", [usage_entry("msg_1", input_tokens=50_000, output_tokens=0)])

        def notifier(message, emoji):
            raise BrokenPipeError("stdout closed")

        tracker = CarbonTracker(
            config=TrackerConfig(source_dirs=(source_dir,)),
            repository=repository,
            scheduler=scheduler,
            notifier=notifier
        )
        assert tracker.scan() == 1
        assert tracker.scan() == 0

        stats = tracker.get_stats()
        assert stats.request_count == 1
        assert stats.total_tokens == 50_000
        assert repository.load_stats() == stats

    def test_later_notifications_survive_a_failing_one(self, source_dir, repository, scheduler):
        delivered = []

        def notifier(message, emoji):
            if not delivered and emoji == "📧":
                delivered.append(None)
                raise UnicodeEncodeError("ascii", "📧", 0, 1, "unsupported")
            delivered.append(emoji)

        tracker = CarbonTracker(
            config=TrackerConfig(source_dirs=(source_dir,), emission_factor=1.0),
            repository=repository,
            scheduler=scheduler,
            notifier=notifier
        )
        events = tracker.ingest(make_record("msg_1", 30))

        assert len(events) == 2
        assert delivered == [None, "☕"]


class TestQueries:
    """Test read entry points for the presentation layer."""

    def test_fresh_tracker(self, make_tracker):
        tracker = make_tracker()
        assert tracker.get_current_tier().id == "idle"
        assert tracker.get_next_tier().id == "light"
        assert tracker.get_progress() == 0
        assert tracker.get_equivalents().km_driven == 0
        assert tracker.emission_factor == 0.0004

    def test_queries_follow_totals(self, make_tracker):
        tracker = make_tracker(emission_factor=1.0)
        tracker.ingest(make_record("msg_1", 60))  # 0.06 kg

        assert tracker.get_current_tier().id == "light"
        assert tracker.get_next_tier().id == "moderate"
        assert tracker.get_progress() == pytest.approx(50 / 0.9)
        assert tracker.get_equivalents().km_driven == pytest.approx(0.5)

    def test_reset_stats(self, make_tracker):
        tracker = make_tracker()
        tracker.ingest(make_record("msg_1", 5000))
        tracker.reset_stats()

        assert tracker.get_stats().total_tokens == 0
        assert tracker.get_current_tier().id == "idle"


class TestLifecycle:
    """Test start/stop and scheduled work."""

    def test_start_scans_transcripts(self, make_tracker, source_dir):
        write_transcript(source_dir, "s1", "a.jsonl", [
            usage_entry("msg_1", input_tokens=1000, output_tokens=0),
            usage_entry("msg_2", input_tokens=500, output_tokens=500),
        ])
        tracker = make_tracker()
        tracker.start()

        stats = tracker.get_stats()
        assert stats.total_tokens == 2000
        assert stats.request_count == 2
        status = tracker.get_monitoring_status()
        assert status.is_monitoring
        assert status.paths_found == 1
        assert status.records_processed == 2

    def test_stop_cancels_all_scheduled_work(self, make_tracker, scheduler):
        tracker = make_tracker()
        tracker.start()
        tracker.start_status_refresh(lambda stats: None, 10)
        tracker.stop()

        assert scheduler.active_tasks == []
        assert not tracker.get_monitoring_status().is_monitoring

    def test_status_refresh_receives_snapshots(self, make_tracker, scheduler):
        snapshots = []
        tracker = make_tracker()
        tracker.start_status_refresh(snapshots.append, 10)

        tracker.ingest(make_record("msg_1", 100))
        scheduler.tick()

        assert len(snapshots) == 1
        assert snapshots[0].total_tokens == 100
        assert scheduler.tasks[0].interval_seconds == 10

    def test_status_refresh_defaults_to_config_interval(self, make_tracker, scheduler):
        tracker = make_tracker(refresh_interval=7.5)
        tracker.start_status_refresh(lambda stats: None)
        assert scheduler.tasks[0].interval_seconds == 7.5

    def test_restart_does_not_double_count(self, make_tracker, source_dir):
        write_transcript(source_dir, "s1", "a.jsonl", [usage_entry("msg_1", input_tokens=1000)])
        first = make_tracker()
        first.start()
        first.stop()

        second = make_tracker()
        second.start()

        assert second.get_stats().total_tokens == 1050
        assert second.get_stats().request_count == 1

    def test_missing_source_dir_warns(self, temp_dir, repository, scheduler):
        warnings = []
        tracker = CarbonTracker(
            config=TrackerConfig(source_dirs=(os.path.join(temp_dir, "nope"),)),
            repository=repository,
            scheduler=scheduler,
            on_warning=warnings.append
        )
        tracker.start()

        assert len(warnings) == 1
        assert scheduler.tasks == []


class TestSharedDatabase:
    """Test trackers in separate processes sharing one database."""

    def test_reset_by_another_tracker_is_not_undone(self, make_tracker, repository):
        watching = make_tracker()
        watching.ingest(make_record("msg_1", 1000))

        resetting = make_tracker()
        resetting.reset_stats()

        watching.ingest(make_record("msg_2", 500))

        stored = repository.load_stats()
        assert stored.request_count == 1
        assert stored.total_tokens == 500
        assert watching.get_stats() == stored

    def test_record_counted_by_another_tracker_is_skipped(self, make_tracker, repository, notifications):
        first = make_tracker(emission_factor=1.0)
        second = make_tracker(emission_factor=1.0)

        first.ingest(make_record("msg_1", 30))
        notifications.clear()

        assert second.ingest(make_record("msg_1", 30)) == []
        assert notifications == []
        assert repository.load_stats().request_count == 1


class TestConfigChange:
    """Test configuration change notifications."""

    def test_factor_change_recomputes_total(self, make_tracker, notifications):
        tracker = make_tracker(emission_factor=0.0004)
        tracker.ingest(make_record("msg_1", 2000))

        tracker.apply_config(TrackerConfig(source_dirs=tracker.config.source_dirs, emission_factor=0.001))

        assert tracker.get_stats().total_emitted_mass_kg == 0.002
        assert tracker.emission_factor == 0.001
        assert notifications == []

    def test_unchanged_factor_keeps_total(self, make_tracker):
        tracker = make_tracker()
        tracker.ingest(make_record("msg_1", 2000))
        before = tracker.get_stats()

        tracker.apply_config(TrackerConfig(source_dirs=tracker.config.source_dirs, show_in_status_bar=False))

        assert tracker.get_stats() == before
        assert tracker.config.show_in_status_bar is False
