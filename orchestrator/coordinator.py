"""Generation run coordinator: admission, phases, per-article retries."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from tenacity import AsyncRetrying, RetryCallState, retry_if_result

from config import get_posts_settings
from core import (
    Feed,
    FeedOutcome,
    GeneratedPost,
    GenerationErrorKind,
    GenerationResult,
    GenerationSummary,
    OwnerConfig,
    PostStatus,
    RunErrorEntry,
    RunOutcome,
    RunPhase,
    RunProgress,
    as_utc,
)
from generation.backoff import BackoffPolicy
from generation.client import GenerationClient
from generation.prompts import PromptBase, build_prompt_base
from generation.selection import Candidate, collect_candidates
from storage.base import ArticleStore, OwnerConfigSource, PromptSource
from utils.exceptions import ConfigLoadError, CooldownActiveError, GenerationError, RunInProgressError
from .cooldown import InMemoryCooldownGuard
from .progress import InMemoryProgressTracker


logger = logging.getLogger(__name__)

GenerationOutcome = Union[GenerationResult, GenerationError]
SleepFunc = Callable[[float], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def truncate_reason(value: str, max_length: int) -> str:
    text = str(value or "").strip() or "Unknown error"
    if len(text) <= max_length:
        return text
    return f"{text[: max_length - 1]}…"


def _is_rate_limited(outcome: Any) -> bool:
    return isinstance(outcome, GenerationError) and outcome.kind == GenerationErrorKind.RATE_LIMITED


@dataclass
class _ArticleAttempt:
    post: GeneratedPost
    calls: int = 0


@dataclass
class _RunState:
    owner_key: str
    started_at: datetime
    eligible: int = 0
    processed: int = 0
    generated: int = 0
    failed: int = 0
    skipped: int = 0
    model: Optional[str] = None
    prompt_base_hash: Optional[str] = None
    errors: List[RunErrorEntry] = field(default_factory=list)
    feeds: Dict[int, FeedOutcome] = field(default_factory=dict)

    def feed_outcome(self, feed_id: int) -> FeedOutcome:
        if feed_id not in self.feeds:
            self.feeds[feed_id] = FeedOutcome(feed_id=feed_id)
        return self.feeds[feed_id]


class GenerationRunCoordinator:
    """
    Runs the post-generation pipeline for one owner at a time.

    Admission claims a per-owner in-flight marker before the cooldown
    test-and-set, so two near-simultaneous triggers can never both start.
    Articles are processed sequentially in a fixed order; a failure on one
    article is recorded on its post and never stops the rest of the batch.
    """

    def __init__(
        self,
        *,
        store: ArticleStore,
        prompts: PromptSource,
        config_source: OwnerConfigSource,
        client: GenerationClient,
        progress: Optional[InMemoryProgressTracker] = None,
        cooldown: Optional[InMemoryCooldownGuard] = None,
        backoff: Optional[BackoffPolicy] = None,
        max_post_attempts: Optional[int] = None,
        error_reason_max_length: Optional[int] = None,
        sleep: Optional[SleepFunc] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        posts_settings = get_posts_settings()
        self._store = store
        self._prompts = prompts
        self._config_source = config_source
        self._client = client
        self._progress = progress or InMemoryProgressTracker()
        self._cooldown = cooldown or InMemoryCooldownGuard()
        self._backoff = backoff or BackoffPolicy.from_settings()
        self._max_post_attempts = (
            posts_settings.max_post_attempts if max_post_attempts is None else max_post_attempts
        )
        self._reason_max_length = error_reason_max_length or posts_settings.error_reason_max_length
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or _utcnow
        self._in_flight: Set[str] = set()
        self._lock = Lock()

    @property
    def progress(self) -> InMemoryProgressTracker:
        return self._progress

    @property
    def cooldown(self) -> InMemoryCooldownGuard:
        return self._cooldown

    @property
    def max_post_attempts(self) -> int:
        return self._max_post_attempts

    def is_running(self, owner_key: str) -> bool:
        with self._lock:
            return owner_key in self._in_flight

    def get_progress(self, owner_key: str) -> Optional[RunProgress]:
        """Snapshot for pollers; None when no run is active."""
        return self._progress.read(owner_key)

    def _claim(self, owner_key: str) -> None:
        with self._lock:
            if owner_key in self._in_flight:
                raise RunInProgressError(owner_key)
            self._in_flight.add(owner_key)

    def _release(self, owner_key: str) -> None:
        with self._lock:
            self._in_flight.discard(owner_key)

    async def trigger(self, owner_key: str, *, now: Optional[datetime] = None) -> RunOutcome:
        """
        Execute one run and return its outcome once finished.

        Raises:
            RunInProgressError: a run is already active for the owner
            CooldownActiveError: the owner's cooldown has not elapsed
        """
        owner_key = str(owner_key or "").strip()
        if not owner_key:
            raise ValueError("owner_key is required")

        started_at = as_utc(now or self._clock())
        self._claim(owner_key)
        try:
            config, config_error = await self._load_config(owner_key)
            if config is not None:
                decision = self._cooldown.try_start(owner_key, config.cooldown_seconds, started_at)
                if not decision.allowed:
                    logger.info(
                        "Run for owner %s blocked by cooldown (%ss remaining)",
                        owner_key,
                        decision.seconds_remaining,
                    )
                    raise CooldownActiveError(decision.seconds_remaining, owner_key=owner_key)

            self._progress.begin(owner_key, started_at=started_at)
            try:
                return await self._run(owner_key, started_at, config, config_error)
            finally:
                self._progress.end(owner_key)
        finally:
            self._release(owner_key)

    async def _load_config(self, owner_key: str) -> Tuple[Optional[OwnerConfig], Optional[ConfigLoadError]]:
        try:
            return await self._config_source.get_owner_config(owner_key), None
        except ConfigLoadError as exc:
            logger.error("Config load failed for owner %s: %s", owner_key, exc)
            return None, exc
        except Exception as exc:
            logger.exception("Config source raised for owner %s", owner_key)
            return None, ConfigLoadError(f"Failed to load run parameters: {exc}", owner_key=owner_key)

    async def _run(
        self,
        owner_key: str,
        started_at: datetime,
        config: Optional[OwnerConfig],
        config_error: Optional[ConfigLoadError],
    ) -> RunOutcome:
        run = _RunState(owner_key=owner_key, started_at=started_at)
        self._progress.update(owner_key, phase=RunPhase.RESOLVING_PARAMS, message="Resolving run parameters")
        if config is None:
            return await self._fail(run, config_error or ConfigLoadError("Run parameters unavailable"))

        run.model = config.model
        self._progress.update(
            owner_key,
            model_used=config.model,
            message=f"window={config.window_days}d cooldown={config.cooldown_seconds}s",
        )
        logger.info("Run started for owner %s (model=%s window=%sd)", owner_key, config.model, config.window_days)

        feeds: Optional[List[Feed]] = None
        try:
            self._progress.update(owner_key, phase=RunPhase.LOADING_PROMPTS, message="Loading prompts")
            prompt_base = build_prompt_base(await self._prompts.list_enabled_prompts_ordered(owner_key))
            run.prompt_base_hash = prompt_base.prompt_base_hash
            self._progress.update(owner_key, prompt_base_hash=prompt_base.prompt_base_hash)

            self._progress.update(owner_key, phase=RunPhase.COLLECTING_ARTICLES, message="Collecting articles")
            feeds = await self._store.list_feeds(owner_key)
            candidates = await collect_candidates(
                self._store, owner_key, config.window_days, started_at, self._max_post_attempts
            )
        except Exception as exc:
            logger.exception("Run for owner %s failed before generation", owner_key)
            return await self._fail(run, exc, feeds)

        for feed in feeds:
            outcome = run.feed_outcome(feed.id)
            outcome.feed_title = feed.title
            outcome.feed_url = feed.url or None
        for candidate in candidates:
            outcome = run.feed_outcome(candidate.article.feed_id)
            outcome.items_read += 1
            outcome.items_within_window += 1

        run.eligible = len(candidates)
        self._progress.update(
            owner_key,
            phase=RunPhase.GENERATING_POSTS,
            eligible_count=run.eligible,
            message=f"Generating posts for {run.eligible} articles",
        )

        feeds_by_id = {feed.id: feed for feed in feeds}
        for candidate in candidates:
            await self._process_candidate(run, candidate, prompt_base, config, feeds_by_id.get(candidate.article.feed_id))

        self._progress.update(owner_key, phase=RunPhase.FINALIZING, message="Aggregating results")
        outcome = self._build_outcome(run, RunPhase.COMPLETED)
        self._progress.update(owner_key, phase=RunPhase.COMPLETED, message="Run completed")
        logger.info(
            "Run finished for owner %s: eligible=%d generated=%d failed=%d skipped=%d",
            owner_key,
            run.eligible,
            run.generated,
            run.failed,
            run.skipped,
        )
        return outcome

    async def _fail(self, run: _RunState, error: BaseException, feeds: Optional[List[Feed]] = None) -> RunOutcome:
        reason = truncate_reason(getattr(error, "message", None) or str(error), self._reason_max_length)
        run.errors.append(RunErrorEntry(article_id=None, reason=reason))
        self._progress.append_error(run.owner_key, None, reason)
        self._progress.update(run.owner_key, phase=RunPhase.FAILED, message=reason)

        if feeds is None:
            try:
                feeds = await self._store.list_feeds(run.owner_key)
            except Exception as exc:
                logger.warning("Could not list feeds for failed run of owner %s: %s", run.owner_key, exc)
                feeds = []
        for feed in feeds:
            outcome = run.feed_outcome(feed.id)
            outcome.feed_title = feed.title
            outcome.feed_url = feed.url or None

        return self._build_outcome(run, RunPhase.FAILED, error=reason)

    async def _process_candidate(
        self,
        run: _RunState,
        candidate: Candidate,
        prompt_base: PromptBase,
        config: OwnerConfig,
        feed: Optional[Feed],
    ) -> None:
        article = candidate.article
        feed_outcome = run.feed_outcome(article.feed_id)

        if candidate.attempts_exhausted:
            run.processed += 1
            run.skipped += 1
            feed_outcome.duplicates += 1
            logger.info("Skipping article %s: attempt budget spent", article.id)
            self._progress.update(
                run.owner_key,
                processed_count=run.processed,
                skipped_count=run.skipped,
                current_article_id=article.id,
                current_article_title=article.title or None,
            )
            return

        attempt = _ArticleAttempt(
            post=candidate.post.model_copy(deep=True) if candidate.post else GeneratedPost(article_id=article.id)
        )
        self._progress.update(
            run.owner_key,
            current_article_id=article.id,
            current_article_title=article.title or None,
        )

        try:
            result = await self._generate_with_backoff(run, attempt, candidate, prompt_base, config, feed)
        except Exception as exc:
            logger.exception("Unexpected failure generating post for article %s", article.id)
            result = GenerationError(
                f"Unexpected error during generation: {exc}",
                kind=GenerationErrorKind.UNKNOWN,
            )

        if isinstance(result, GenerationResult):
            stored = await self._save_post(
                attempt.post.model_copy(
                    update={
                        "content": result.content,
                        "status": PostStatus.SUCCESS,
                        "model_used": result.model_used or config.model,
                        "tokens_input": result.tokens_input,
                        "tokens_output": result.tokens_output,
                        "error_reason": None,
                        "prompt_base_hash": prompt_base.prompt_base_hash,
                        "generated_at": self._clock(),
                    }
                )
            )
            if stored:
                run.generated += 1
                feed_outcome.articles_created += 1
                if result.model_used:
                    run.model = result.model_used
            else:
                self._record_failure(run, feed_outcome, article.id, "Generated post could not be stored")
        else:
            reason = self._failure_reason(result, attempt.calls)
            await self._save_post(
                attempt.post.model_copy(
                    update={
                        "status": PostStatus.FAILED,
                        "error_reason": reason,
                        "prompt_base_hash": prompt_base.prompt_base_hash,
                    }
                )
            )
            self._record_failure(run, feed_outcome, article.id, reason)

        run.processed += 1
        self._progress.update(
            run.owner_key,
            processed_count=run.processed,
            generated_count=run.generated,
            failed_count=run.failed,
            current_article_id=article.id,
            current_article_title=article.title or None,
            model_used=run.model,
        )

    def _record_failure(self, run: _RunState, feed_outcome: FeedOutcome, article_id: int, reason: str) -> None:
        run.failed += 1
        run.errors.append(RunErrorEntry(article_id=article_id, reason=reason))
        feed_outcome.invalid_items += 1
        feed_outcome.error = reason
        self._progress.append_error(run.owner_key, article_id, reason)
        logger.warning("Post generation failed for article %s: %s", article_id, reason)

    async def _generate_with_backoff(
        self,
        run: _RunState,
        attempt: _ArticleAttempt,
        candidate: Candidate,
        prompt_base: PromptBase,
        config: OwnerConfig,
        feed: Optional[Feed],
    ) -> GenerationOutcome:
        article = candidate.article

        async def _call_once() -> GenerationOutcome:
            attempt.calls += 1
            pending = attempt.post.model_copy(
                update={
                    "status": PostStatus.PENDING,
                    "attempt_count": attempt.post.attempt_count + 1,
                    "prompt_base_hash": prompt_base.prompt_base_hash,
                }
            )
            attempt.post = await self._store.upsert_generated_post(pending)
            return await self._client.generate(article, prompt_base.system_prompt, config.model, feed=feed)

        def _before_sleep(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "Rate limited on article %s (attempt %d); retrying in %.1fs",
                article.id,
                retry_state.attempt_number,
                delay,
            )
            self._progress.update(
                run.owner_key,
                message=f"Rate limited; retrying article {article.id} in {delay:.1f}s",
            )

        retryer = AsyncRetrying(
            retry=retry_if_result(_is_rate_limited),
            stop=self._backoff.should_stop,
            wait=self._backoff.wait_seconds,
            sleep=self._sleep,
            before_sleep=_before_sleep,
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )
        return await retryer(_call_once)

    def _failure_reason(self, error: GenerationError, calls: int) -> str:
        if error.kind == GenerationErrorKind.RATE_LIMITED:
            reason = f"Generation service is receiving too many requests; gave up after {calls} attempts"
        else:
            reason = error.message
        return truncate_reason(reason, self._reason_max_length)

    async def _save_post(self, post: GeneratedPost) -> Optional[GeneratedPost]:
        try:
            return await self._store.upsert_generated_post(post)
        except Exception:
            logger.exception("Failed to store post for article %s", post.article_id)
            return None

    def _build_outcome(self, run: _RunState, phase: RunPhase, error: Optional[str] = None) -> RunOutcome:
        finished_at = self._clock()
        return RunOutcome(
            owner_key=run.owner_key,
            now=run.started_at,
            started_at=run.started_at,
            finished_at=finished_at,
            phase=phase,
            error=error,
            feeds=[run.feeds[feed_id] for feed_id in sorted(run.feeds)],
            generation=GenerationSummary(
                eligible_count=run.eligible,
                processed_count=run.processed,
                generated_count=run.generated,
                failed_count=run.failed,
                skipped_count=run.skipped,
                prompt_base_hash=run.prompt_base_hash,
                model_used=run.model,
                errors=list(run.errors),
            ),
        )

    async def build_cooldown_outcome(self, owner_key: str, seconds_remaining: int) -> RunOutcome:
        """Per-feed outcome for a trigger rejected by the cooldown; touches no run state."""
        now = self._clock()
        feeds = await self._store.list_feeds(owner_key)
        return RunOutcome(
            owner_key=owner_key,
            now=now,
            started_at=now,
            finished_at=now,
            phase=RunPhase.INITIALIZING,
            error="Post refresh cooldown is still active",
            feeds=[
                FeedOutcome(
                    feed_id=feed.id,
                    feed_title=feed.title,
                    feed_url=feed.url or None,
                    skipped_by_cooldown=True,
                    cooldown_seconds_remaining=seconds_remaining,
                )
                for feed in feeds
            ],
        )
