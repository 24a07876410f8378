"""Core contracts and shared types for the post-generation engine."""

from .contracts import (
    PHASE_ORDER,
    TERMINAL_PHASES,
    Article,
    CooldownDecision,
    CooldownRecord,
    Feed,
    FeedOutcome,
    GeneratedPost,
    GenerationErrorKind,
    GenerationResult,
    GenerationSummary,
    OwnerConfig,
    PostStatus,
    PreviewResult,
    Prompt,
    RawProbeResult,
    RunErrorEntry,
    RunOutcome,
    RunPhase,
    RunProgress,
    RunState,
    as_utc,
)

__all__ = [
    "PHASE_ORDER",
    "TERMINAL_PHASES",
    "Article",
    "CooldownDecision",
    "CooldownRecord",
    "Feed",
    "FeedOutcome",
    "GeneratedPost",
    "GenerationErrorKind",
    "GenerationResult",
    "GenerationSummary",
    "OwnerConfig",
    "PostStatus",
    "PreviewResult",
    "Prompt",
    "RawProbeResult",
    "RunErrorEntry",
    "RunOutcome",
    "RunPhase",
    "RunProgress",
    "RunState",
    "as_utc",
]
