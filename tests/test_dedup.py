from __future__ import annotations

from core.dedup import DedupTracker


def test_seeded_ids_are_not_new() -> None:
    tracker = DedupTracker()
    tracker.seed("-1001", [10, 11, 12])
    assert tracker.is_seeded("-1001")
    assert not tracker.is_new("-1001", 11)
    assert tracker.is_new("-1001", 13)


def test_channels_are_tracked_separately() -> None:
    tracker = DedupTracker()
    tracker.mark_seen("-1001", 5)
    assert not tracker.is_new("-1001", 5)
    assert tracker.is_new("-1002", 5)
    assert not tracker.is_seeded("-1002")


def test_mark_seen_is_idempotent() -> None:
    tracker = DedupTracker()
    tracker.mark_seen("-1001", 1)
    tracker.mark_seen("-1001", 1)
    assert tracker.size("-1001") == 1
    assert tracker.size("-1002") == 0


def test_seed_with_empty_history_marks_channel_seeded() -> None:
    tracker = DedupTracker()
    tracker.seed("-1001", [])
    assert tracker.is_seeded("-1001")
    assert tracker.is_new("-1001", 1)
