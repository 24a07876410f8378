"""Eligible-article selection shared by runs and previews."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from core import Article, GeneratedPost
from storage.base import ArticleStore


@dataclass
class Candidate:
    article: Article
    post: Optional[GeneratedPost] = None
    attempts_exhausted: bool = False


def generation_order_key(article: Article):
    return (article.published_at, article.id)


async def collect_candidates(
    store: ArticleStore,
    owner_key: str,
    window_days: int,
    now: datetime,
    max_post_attempts: int = 0,
) -> List[Candidate]:
    """
    Eligible articles in generation order (oldest first, then id).

    Articles whose post already spent ``max_post_attempts`` calls across
    earlier runs are returned with ``attempts_exhausted`` set; ``0`` disables
    the limit.
    """
    articles = await store.list_eligible_articles(owner_key, window_days, now)
    candidates: List[Candidate] = []
    for article in sorted(articles, key=generation_order_key):
        post = await store.get_generated_post(article.id)
        exhausted = bool(
            max_post_attempts
            and post is not None
            and post.attempt_count >= max_post_attempts
        )
        candidates.append(Candidate(article=article, post=post, attempts_exhausted=exhausted))
    return candidates


def first_generatable(candidates: List[Candidate]) -> Optional[Candidate]:
    for candidate in candidates:
        if not candidate.attempts_exhausted:
            return candidate
    return None
