from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core import Article, Feed, GeneratedPost, PostStatus, Prompt
from storage.memory import InMemoryArticleStore, InMemoryPromptStore, SettingsOwnerConfigSource
from utils.exceptions import ConfigLoadError, StorageError


NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_eligible_articles_respect_window_owner_and_success() -> None:
    store = InMemoryArticleStore()
    store.add_feed(Feed(id=1, owner_key="a", url="https://a.test/rss"))
    store.add_feed(Feed(id=2, owner_key="b", url="https://b.test/rss"))
    store.add_article(Article(id=1, feed_id=1, published_at=NOW - timedelta(days=1)))
    store.add_article(Article(id=2, feed_id=1, published_at=NOW - timedelta(days=8)))
    store.add_article(Article(id=3, feed_id=2, published_at=NOW - timedelta(days=1)))
    store.add_article(Article(id=4, feed_id=1, published_at=NOW - timedelta(hours=2)))
    await store.upsert_generated_post(GeneratedPost(article_id=4, status=PostStatus.SUCCESS, content="done"))
    await store.upsert_generated_post(GeneratedPost(article_id=1, status=PostStatus.FAILED, error_reason="x"))

    eligible = await store.list_eligible_articles("a", 7, NOW)

    assert [a.id for a in eligible] == [1]


@pytest.mark.asyncio
async def test_upsert_keeps_one_post_per_article() -> None:
    store = InMemoryArticleStore()
    store.add_feed(Feed(id=1, owner_key="a"))
    store.add_article(Article(id=1, feed_id=1, published_at=NOW))

    first = await store.upsert_generated_post(GeneratedPost(article_id=1, attempt_count=1))
    second = await store.upsert_generated_post(GeneratedPost(article_id=1, attempt_count=2))

    assert first.id == second.id
    assert len(store.list_posts()) == 1
    assert (await store.get_generated_post(1)).attempt_count == 2

    with pytest.raises(StorageError):
        await store.upsert_generated_post(GeneratedPost(article_id=99))
    with pytest.raises(StorageError):
        store.add_article(Article(id=5, feed_id=42, published_at=NOW))


@pytest.mark.asyncio
async def test_prompts_ordered_by_position_and_filtered() -> None:
    prompts = InMemoryPromptStore()
    prompts.add_prompt(Prompt(id=1, owner_key="a", title="second", position=2))
    prompts.add_prompt(Prompt(id=2, owner_key="a", title="first", position=1))
    prompts.add_prompt(Prompt(id=3, owner_key="a", title="off", position=0))
    prompts.add_prompt(Prompt(id=4, owner_key="b", title="foreign", position=0))
    prompts.set_enabled(3, False)

    ordered = await prompts.list_enabled_prompts_ordered("a")

    assert [p.title for p in ordered] == ["first", "second"]


@pytest.mark.asyncio
async def test_owner_config_normalizes_and_reports_failures() -> None:
    source = SettingsOwnerConfigSource({"window_days": 7, "cooldown_seconds": 3600, "model": "gpt-test"})
    source.set_owner_config("a", window_days=0, cooldown_seconds=-5)

    config = await source.get_owner_config("a")
    assert (config.window_days, config.cooldown_seconds, config.model) == (1, 0, "gpt-test")

    source.set_owner_config("b", model="  ")
    with pytest.raises(ConfigLoadError):
        await source.get_owner_config("b")


def test_article_and_prompt_timestamps_default_to_utc() -> None:
    article = Article(id=1, feed_id=1, published_at=datetime(2026, 10, 17, 11, 0))
    prompt = Prompt(id=1, owner_key="a", created_at="2026-10-01T08:00:00")

    assert article.published_at == datetime(2026, 10, 17, 11, 0, tzinfo=timezone.utc)
    assert prompt.created_at.tzinfo is not None
