"""In-memory per-owner run progress for polling clients."""

from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional

from core import PHASE_ORDER, TERMINAL_PHASES, RunErrorEntry, RunPhase, RunProgress, RunState
from utils.exceptions import ProgressInvariantError


COUNTER_FIELDS = ("processed_count", "generated_count", "failed_count", "skipped_count")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_phase(current: RunPhase, target: RunPhase) -> None:
    if target == current:
        return
    if current in TERMINAL_PHASES:
        raise ProgressInvariantError(
            "Run already reached a terminal phase", {"current": current.value, "target": target.value}
        )
    if target == RunPhase.FAILED:
        return
    if PHASE_ORDER.index(target) < PHASE_ORDER.index(current):
        raise ProgressInvariantError(
            "Run phase cannot move backwards", {"current": current.value, "target": target.value}
        )


class InMemoryProgressTracker:
    """
    Thread-safe progress snapshots keyed by owner.

    Writers go through ``update`` one at a time; readers always get a deep
    copy, never a reference into the live snapshot.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[str, RunProgress] = {}
        self._lock = Lock()

    def begin(self, owner_key: str, *, started_at: Optional[datetime] = None) -> RunProgress:
        now = started_at or _utcnow()
        with self._lock:
            status = RunProgress(owner_key=owner_key, started_at=now, updated_at=now)
            self._snapshots[owner_key] = status
            return status.model_copy(deep=True)

    def update(self, owner_key: str, **fields: Any) -> Optional[RunProgress]:
        unknown = set(fields) - set(RunProgress.model_fields)
        if unknown:
            raise ProgressInvariantError("Unknown progress fields", {"fields": sorted(unknown)})

        with self._lock:
            status = self._snapshots.get(owner_key)
            if not status:
                return None

            if "phase" in fields:
                fields["phase"] = RunPhase(fields["phase"])
                _check_phase(status.phase, fields["phase"])
            for name in COUNTER_FIELDS:
                if name in fields and fields[name] < getattr(status, name):
                    raise ProgressInvariantError(
                        "Progress counters cannot decrease",
                        {"field": name, "current": getattr(status, name), "value": fields[name]},
                    )
            if (
                "eligible_count" in fields
                and status.eligible_count is not None
                and fields["eligible_count"] != status.eligible_count
            ):
                raise ProgressInvariantError("Eligible count is fixed once collected")

            merged = status.model_copy(update=fields)
            eligible = merged.eligible_count
            if eligible is not None and merged.processed_count > eligible:
                raise ProgressInvariantError(
                    "Processed count exceeds eligible count",
                    {"processed": merged.processed_count, "eligible": eligible},
                )
            if merged.generated_count + merged.failed_count + merged.skipped_count > merged.processed_count:
                raise ProgressInvariantError("Outcome counts exceed processed count")

            now = _utcnow()
            merged.updated_at = now
            if merged.phase == RunPhase.COMPLETED:
                merged.status = RunState.COMPLETED
                merged.finished_at = merged.finished_at or now
            elif merged.phase == RunPhase.FAILED:
                merged.status = RunState.FAILED
                merged.finished_at = merged.finished_at or now

            self._snapshots[owner_key] = merged
            return merged.model_copy(deep=True)

    def append_error(self, owner_key: str, article_id: Optional[int], reason: str) -> bool:
        with self._lock:
            status = self._snapshots.get(owner_key)
            if not status:
                return False
            status.errors.append(RunErrorEntry(article_id=article_id, reason=reason))
            status.updated_at = _utcnow()
            return True

    def read(self, owner_key: str) -> Optional[RunProgress]:
        with self._lock:
            status = self._snapshots.get(owner_key)
            return status.model_copy(deep=True) if status else None

    def end(self, owner_key: str) -> Optional[RunProgress]:
        with self._lock:
            status = self._snapshots.pop(owner_key, None)
            return status.model_copy(deep=True) if status else None

    def active_owners(self) -> List[str]:
        with self._lock:
            return sorted(self._snapshots)
