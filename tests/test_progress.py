from __future__ import annotations

import pytest

from core import RunPhase, RunState
from orchestrator.progress import InMemoryProgressTracker
from utils.exceptions import ProgressInvariantError


def test_no_snapshot_before_begin_or_after_end() -> None:
    tracker = InMemoryProgressTracker()
    assert tracker.read("owner") is None

    tracker.begin("owner")
    assert tracker.read("owner").phase == RunPhase.INITIALIZING

    ended = tracker.end("owner")
    assert ended is not None
    assert tracker.read("owner") is None
    assert tracker.update("owner", processed_count=1) is None


def test_phases_advance_and_terminal_sets_status() -> None:
    tracker = InMemoryProgressTracker()
    tracker.begin("owner")

    for phase in (RunPhase.RESOLVING_PARAMS, RunPhase.LOADING_PROMPTS, RunPhase.COLLECTING_ARTICLES):
        tracker.update("owner", phase=phase)
    tracker.update("owner", phase=RunPhase.GENERATING_POSTS, eligible_count=2)
    tracker.update("owner", phase=RunPhase.FINALIZING)
    done = tracker.update("owner", phase=RunPhase.COMPLETED)

    assert done.status == RunState.COMPLETED
    assert done.finished_at is not None


def test_phase_cannot_move_backwards() -> None:
    tracker = InMemoryProgressTracker()
    tracker.begin("owner")
    tracker.update("owner", phase=RunPhase.LOADING_PROMPTS)

    with pytest.raises(ProgressInvariantError):
        tracker.update("owner", phase=RunPhase.RESOLVING_PARAMS)


def test_failed_reachable_from_any_active_phase_but_not_after_completion() -> None:
    tracker = InMemoryProgressTracker()
    tracker.begin("owner")
    failed = tracker.update("owner", phase="failed")
    assert failed.status == RunState.FAILED

    tracker.begin("other")
    for phase in RunPhase:
        if phase not in (RunPhase.INITIALIZING, RunPhase.FAILED):
            tracker.update("other", phase=phase)
    with pytest.raises(ProgressInvariantError):
        tracker.update("other", phase=RunPhase.FAILED)


def test_counters_are_monotonic_and_bounded() -> None:
    tracker = InMemoryProgressTracker()
    tracker.begin("owner")
    tracker.update("owner", eligible_count=2, processed_count=1, generated_count=1)

    with pytest.raises(ProgressInvariantError):
        tracker.update("owner", processed_count=0)
    with pytest.raises(ProgressInvariantError):
        tracker.update("owner", processed_count=3)
    with pytest.raises(ProgressInvariantError):
        tracker.update("owner", failed_count=1)
    with pytest.raises(ProgressInvariantError):
        tracker.update("owner", eligible_count=5)
    with pytest.raises(ProgressInvariantError):
        tracker.update("owner", not_a_field=1)

    snapshot = tracker.update("owner", processed_count=2, failed_count=1)
    assert (snapshot.processed_count, snapshot.generated_count, snapshot.failed_count) == (2, 1, 1)


def test_read_returns_independent_copy() -> None:
    tracker = InMemoryProgressTracker()
    tracker.begin("owner")
    tracker.append_error("owner", 9, "boom")

    snapshot = tracker.read("owner")
    snapshot.errors.clear()
    snapshot.processed_count = 99

    fresh = tracker.read("owner")
    assert fresh.processed_count == 0
    assert [(e.article_id, e.reason) for e in fresh.errors] == [(9, "boom")]


def test_owners_are_independent() -> None:
    tracker = InMemoryProgressTracker()
    tracker.begin("a")
    tracker.begin("b")
    tracker.update("a", phase=RunPhase.LOADING_PROMPTS)

    assert tracker.read("b").phase == RunPhase.INITIALIZING
    assert tracker.active_owners() == ["a", "b"]
