"""Request preview and raw upstream probe for admins."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Callable, Dict, Optional, Tuple

from core import Feed, OwnerConfig, PreviewResult, RawProbeResult, as_utc
from storage.base import ArticleStore, OwnerConfigSource, PromptSource
from utils.exceptions import ArticleNotFoundError
from .client import GenerationClient
from .prompts import PromptBase, build_generation_payload, build_news_payload, build_prompt_base
from .selection import Candidate, collect_candidates, first_generatable


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PreviewBuilder:
    """
    Builds the exact generation request a run would send, without running it.

    Shares prompt assembly and article selection with the run coordinator but
    never reads or writes run progress or generated posts.
    """

    def __init__(
        self,
        *,
        store: ArticleStore,
        prompts: PromptSource,
        config_source: OwnerConfigSource,
        client: GenerationClient,
        max_post_attempts: int = 0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._prompts = prompts
        self._config_source = config_source
        self._client = client
        self._max_post_attempts = max_post_attempts
        self._clock = clock or _utcnow

    async def _resolve(
        self, owner_key: str, article_id: Optional[int], now: Optional[datetime]
    ) -> Tuple[OwnerConfig, PromptBase, Candidate, Optional[Feed]]:
        current = as_utc(now or self._clock())
        config = await self._config_source.get_owner_config(owner_key)
        prompt_base = build_prompt_base(await self._prompts.list_enabled_prompts_ordered(owner_key))
        candidates = await collect_candidates(
            self._store, owner_key, config.window_days, current, self._max_post_attempts
        )

        if article_id is None:
            candidate = first_generatable(candidates)
        else:
            candidate = next((c for c in candidates if c.article.id == article_id), None)
        if candidate is None:
            raise ArticleNotFoundError(article_id)

        feeds: Dict[int, Feed] = {feed.id: feed for feed in await self._store.list_feeds(owner_key)}
        return config, prompt_base, candidate, feeds.get(candidate.article.feed_id)

    async def build_preview(
        self, owner_key: str, article_id: Optional[int] = None, *, now: Optional[datetime] = None
    ) -> PreviewResult:
        config, prompt_base, candidate, feed = await self._resolve(owner_key, article_id, now)
        logger.info(
            "Preview built for owner %s article %s hash=%s",
            owner_key,
            candidate.article.id,
            prompt_base.prompt_base_hash[:12],
        )
        return PreviewResult(
            prompt_base=prompt_base.system_prompt,
            prompt_base_hash=prompt_base.prompt_base_hash,
            news_payload=build_news_payload(candidate.article, feed),
            model=config.model,
        )

    async def probe_raw(
        self, owner_key: str, article_id: Optional[int] = None, *, now: Optional[datetime] = None
    ) -> RawProbeResult:
        config, prompt_base, candidate, feed = await self._resolve(owner_key, article_id, now)
        payload = build_generation_payload(candidate.article, prompt_base.system_prompt, config.model, feed)
        result = await self._client.probe_raw(payload)
        logger.info(
            "Raw probe for owner %s article %s returned HTTP %s",
            owner_key,
            candidate.article.id,
            result.status_code,
        )
        return result.model_copy(update={"article_id": candidate.article.id})
