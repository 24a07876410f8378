"""Run orchestration: admission, cooldown and progress for generation runs."""

from .cooldown import InMemoryCooldownGuard
from .coordinator import GenerationRunCoordinator, truncate_reason
from .progress import InMemoryProgressTracker

__all__ = [
    "GenerationRunCoordinator",
    "InMemoryCooldownGuard",
    "InMemoryProgressTracker",
    "truncate_reason",
]
