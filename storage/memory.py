"""In-memory collaborator implementations used by the runtime and tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import count
from threading import Lock
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from config import get_openai_settings, get_posts_settings
from core import Article, Feed, GeneratedPost, OwnerConfig, PostStatus, Prompt
from utils.exceptions import ConfigLoadError, StorageError
from .base import ArticleStore, OwnerConfigSource, PromptSource


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryArticleStore(ArticleStore):
    """Thread-safe store for feeds, articles and generated posts."""

    def __init__(self) -> None:
        self._feeds: Dict[int, Feed] = {}
        self._articles: Dict[int, Article] = {}
        self._posts: Dict[int, GeneratedPost] = {}
        self._post_ids = count(1)
        self._lock = Lock()

    def add_feed(self, feed: Feed) -> Feed:
        with self._lock:
            self._feeds[feed.id] = feed
            return feed

    def add_article(self, article: Article) -> Article:
        with self._lock:
            if article.feed_id not in self._feeds:
                raise StorageError("Unknown feed for article", {"feed_id": article.feed_id})
            self._articles[article.id] = article
            return article

    def list_posts(self) -> List[GeneratedPost]:
        with self._lock:
            return [post.model_copy(deep=True) for post in self._posts.values()]

    async def list_eligible_articles(self, owner_key: str, window_days: int, now: datetime) -> List[Article]:
        window_start = now - timedelta(days=window_days)
        with self._lock:
            feed_ids = {feed.id for feed in self._feeds.values() if feed.owner_key == owner_key}
            eligible: List[Article] = []
            for article in self._articles.values():
                if article.feed_id not in feed_ids:
                    continue
                if article.published_at < window_start or article.published_at > now:
                    continue
                post = self._posts.get(article.id)
                if post is not None and post.status == PostStatus.SUCCESS:
                    continue
                eligible.append(article)
            return eligible

    async def list_feeds(self, owner_key: str) -> List[Feed]:
        with self._lock:
            feeds = [feed for feed in self._feeds.values() if feed.owner_key == owner_key]
        return sorted(feeds, key=lambda feed: feed.id)

    async def get_generated_post(self, article_id: int) -> Optional[GeneratedPost]:
        with self._lock:
            post = self._posts.get(article_id)
            return post.model_copy(deep=True) if post else None

    async def upsert_generated_post(self, post: GeneratedPost) -> GeneratedPost:
        with self._lock:
            if post.article_id not in self._articles:
                raise StorageError("Unknown article for post", {"article_id": post.article_id})
            stored = post.model_copy(deep=True)
            if stored.id is None:
                existing = self._posts.get(post.article_id)
                stored.id = existing.id if existing else next(self._post_ids)
            stored.updated_at = _utcnow()
            self._posts[post.article_id] = stored
            return stored.model_copy(deep=True)


class InMemoryPromptStore(PromptSource):
    """Prompt blocks keyed by owner."""

    def __init__(self) -> None:
        self._prompts: Dict[int, Prompt] = {}
        self._lock = Lock()

    def add_prompt(self, prompt: Prompt) -> Prompt:
        with self._lock:
            self._prompts[prompt.id] = prompt
            return prompt

    def set_enabled(self, prompt_id: int, enabled: bool) -> None:
        with self._lock:
            current = self._prompts[prompt_id]
            self._prompts[prompt_id] = current.model_copy(update={"enabled": enabled})

    async def list_enabled_prompts_ordered(self, owner_key: str) -> List[Prompt]:
        with self._lock:
            prompts = [p for p in self._prompts.values() if p.owner_key == owner_key and p.enabled]
        return sorted(prompts, key=lambda p: (p.position, p.created_at, p.id))


class SettingsOwnerConfigSource(OwnerConfigSource):
    """Owner parameters from settings defaults plus per-owner overrides."""

    def __init__(self, defaults: Optional[Dict[str, Any]] = None) -> None:
        if defaults is None:
            posts = get_posts_settings()
            defaults = {
                "window_days": posts.window_days,
                "cooldown_seconds": posts.cooldown_seconds,
                "model": get_openai_settings().model,
            }
        self._defaults = dict(defaults)
        self._overrides: Dict[str, Dict[str, Any]] = {}
        self._lock = Lock()

    def set_owner_config(self, owner_key: str, **fields: Any) -> None:
        with self._lock:
            self._overrides.setdefault(owner_key, {}).update(fields)

    async def get_owner_config(self, owner_key: str) -> OwnerConfig:
        with self._lock:
            merged = {**self._defaults, **self._overrides.get(owner_key, {})}
        try:
            return OwnerConfig(**merged)
        except (ValidationError, TypeError, ValueError) as exc:
            raise ConfigLoadError(f"Invalid run parameters: {exc}", owner_key=owner_key) from exc
