"""Per-owner cooldown between generation runs."""

from __future__ import annotations

from datetime import datetime, timezone
import math
from threading import Lock
from typing import Dict, Optional

from core import CooldownDecision, CooldownRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryCooldownGuard:
    """Last-run timestamps with an atomic test-and-set admission check."""

    def __init__(self) -> None:
        self._records: Dict[str, CooldownRecord] = {}
        self._lock = Lock()

    def try_start(
        self, owner_key: str, cooldown_seconds: int, now: Optional[datetime] = None
    ) -> CooldownDecision:
        """Admit a run and record ``now``, or report the seconds left."""
        current = now or _utcnow()
        with self._lock:
            record = self._records.get(owner_key)
            if cooldown_seconds > 0 and record is not None:
                elapsed = max(0.0, (current - record.last_run_started_at).total_seconds())
                if elapsed < cooldown_seconds:
                    return CooldownDecision(
                        allowed=False,
                        seconds_remaining=math.ceil(cooldown_seconds - elapsed),
                    )
            self._records[owner_key] = CooldownRecord(owner_key=owner_key, last_run_started_at=current)
            return CooldownDecision(allowed=True)

    def get_record(self, owner_key: str) -> Optional[CooldownRecord]:
        with self._lock:
            record = self._records.get(owner_key)
            return record.model_copy() if record else None

    def reset(self, owner_key: str) -> bool:
        with self._lock:
            return self._records.pop(owner_key, None) is not None
