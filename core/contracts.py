"""Canonical data contracts for the post-generation engine."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PostStatus(str, Enum):
    """Lifecycle of a generated post."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class RunPhase(str, Enum):
    """Phases a generation run moves through, in order."""

    INITIALIZING = "initializing"
    RESOLVING_PARAMS = "resolving_params"
    LOADING_PROMPTS = "loading_prompts"
    COLLECTING_ARTICLES = "collecting_articles"
    GENERATING_POSTS = "generating_posts"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


PHASE_ORDER: List[RunPhase] = [
    RunPhase.INITIALIZING,
    RunPhase.RESOLVING_PARAMS,
    RunPhase.LOADING_PROMPTS,
    RunPhase.COLLECTING_ARTICLES,
    RunPhase.GENERATING_POSTS,
    RunPhase.FINALIZING,
    RunPhase.COMPLETED,
]

TERMINAL_PHASES = {RunPhase.COMPLETED, RunPhase.FAILED}


class RunState(str, Enum):
    """Coarse status exposed next to the phase."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationErrorKind(str, Enum):
    """Closed set of generation failure kinds."""

    RATE_LIMITED = "RATE_LIMITED"
    INVALID_MODEL = "INVALID_MODEL"
    TIMEOUT = "TIMEOUT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NETWORK = "NETWORK"
    UNKNOWN = "UNKNOWN"


class Feed(BaseModel):
    """RSS feed registered by an owner."""

    id: int
    owner_key: str
    title: Optional[str] = None
    url: str = ""


class Prompt(BaseModel):
    """Owner-defined prompt block; enabled blocks are concatenated by position."""

    id: int
    owner_key: str
    title: str = ""
    content: str = ""
    position: int = 0
    enabled: bool = True
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class Article(BaseModel):
    """Ingested feed item. Immutable once stored."""

    model_config = ConfigDict(frozen=True)

    id: int
    feed_id: int
    title: str = ""
    link: Optional[str] = None
    guid: Optional[str] = None
    content_snippet: str = ""
    raw_content_html: Optional[str] = None
    published_at: datetime

    @field_validator("published_at")
    @classmethod
    def _published_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class GeneratedPost(BaseModel):
    """Draft post produced (or attempted) for one article."""

    model_config = ConfigDict(protected_namespaces=())

    id: Optional[int] = None
    article_id: int
    content: Optional[str] = None
    status: PostStatus = PostStatus.PENDING
    model_used: Optional[str] = None
    tokens_input: Optional[int] = None
    tokens_output: Optional[int] = None
    attempt_count: int = 0
    error_reason: Optional[str] = None
    prompt_base_hash: Optional[str] = None
    generated_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=_utcnow)


class OwnerConfig(BaseModel):
    """Per-owner run parameters, normalized the way stored app params are."""

    window_days: int = 7
    cooldown_seconds: int = 3600
    model: str

    @field_validator("window_days", mode="before")
    @classmethod
    def _normalize_window(cls, value: Any) -> int:
        days = int(value)
        return days if days >= 1 else 1

    @field_validator("cooldown_seconds", mode="before")
    @classmethod
    def _normalize_cooldown(cls, value: Any) -> int:
        seconds = int(value)
        return seconds if seconds >= 0 else 0

    @field_validator("model", mode="before")
    @classmethod
    def _non_empty_model(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("model is required")
        return text


class GenerationResult(BaseModel):
    """Successful generation call."""

    model_config = ConfigDict(protected_namespaces=())

    content: str
    tokens_input: Optional[int] = None
    tokens_output: Optional[int] = None
    model_used: Optional[str] = None


class RunErrorEntry(BaseModel):
    article_id: Optional[int] = None
    reason: str


class RunProgress(BaseModel):
    """Live per-owner run snapshot served to polling clients."""

    model_config = ConfigDict(protected_namespaces=())

    owner_key: str
    phase: RunPhase = RunPhase.INITIALIZING
    status: RunState = RunState.IN_PROGRESS
    eligible_count: Optional[int] = None
    processed_count: int = 0
    generated_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    current_article_id: Optional[int] = None
    current_article_title: Optional[str] = None
    model_used: Optional[str] = None
    prompt_base_hash: Optional[str] = None
    message: Optional[str] = None
    errors: List[RunErrorEntry] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None


class CooldownRecord(BaseModel):
    """Last admitted run start for an owner."""

    owner_key: str
    last_run_started_at: datetime


class CooldownDecision(BaseModel):
    """Result of a cooldown test-and-set."""

    allowed: bool
    seconds_remaining: int = 0


class FeedOutcome(BaseModel):
    """Per-feed aggregate returned by the trigger endpoint."""

    feed_id: int
    feed_title: Optional[str] = None
    feed_url: Optional[str] = None
    items_read: int = 0
    items_within_window: int = 0
    articles_created: int = 0
    duplicates: int = 0
    invalid_items: int = 0
    skipped_by_cooldown: bool = False
    cooldown_seconds_remaining: int = 0
    error: Optional[str] = None


class GenerationSummary(BaseModel):
    """Run-level aggregate counts."""

    model_config = ConfigDict(protected_namespaces=())

    eligible_count: int = 0
    processed_count: int = 0
    generated_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    prompt_base_hash: Optional[str] = None
    model_used: Optional[str] = None
    errors: List[RunErrorEntry] = Field(default_factory=list)


class RunOutcome(BaseModel):
    """Synchronous result of a trigger call."""

    owner_key: str
    now: datetime
    started_at: datetime
    finished_at: Optional[datetime] = None
    phase: RunPhase
    error: Optional[str] = None
    feeds: List[FeedOutcome] = Field(default_factory=list)
    generation: GenerationSummary = Field(default_factory=GenerationSummary)

    @property
    def articles_created(self) -> int:
        return sum(feed.articles_created for feed in self.feeds)


class PreviewResult(BaseModel):
    """Exact request material a run would send, without executing it."""

    prompt_base: str
    prompt_base_hash: str
    news_payload: Optional[Dict[str, Any]] = None
    model: str


class RawProbeResult(BaseModel):
    """Verbatim upstream response captured by a diagnostics probe."""

    status_code: int
    ok: bool
    body: Any = None
    model: Optional[str] = None
    article_id: Optional[int] = None
