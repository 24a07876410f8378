"""Prompt assembly and request payload construction."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import re
from typing import Any, Dict, Iterable, List, Optional

from core import Article, Feed, Prompt


PROMPT_SEPARATOR = "\n---\n"
FINAL_INSTRUCTION = (
    "Final instruction: write a LinkedIn post based on the news item and the context above."
)

INPUT_CONTENT_TYPE = "input_text"

_NEWLINES = re.compile(r"\r\n?")


@dataclass(frozen=True)
class PromptBase:
    base_prompt: str
    system_prompt: str
    prompt_base_hash: str


def normalize_multiline(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _NEWLINES.sub("\n", value).strip()


def build_system_prompt_text(base_prompt: str) -> str:
    parts: List[str] = []
    trimmed = str(base_prompt or "").strip()
    if trimmed:
        parts.append(trimmed)
    parts.append(FINAL_INSTRUCTION)
    return "\n\n".join(parts).strip()


def hash_prompt(system_prompt: str) -> str:
    return hashlib.sha256(system_prompt.encode("utf-8")).hexdigest()


def build_prompt_base(prompts: Iterable[Prompt]) -> PromptBase:
    """
    Concatenate enabled prompt blocks in the given order.

    Each block is ``title`` and ``content`` separated by a blank line; blocks
    are joined with ``PROMPT_SEPARATOR``. Disabled or empty blocks are dropped.
    The hash covers the final system prompt, so any edit, reorder or toggle
    changes it.
    """
    sections: List[str] = []
    for prompt in prompts:
        if not prompt.enabled:
            continue
        block = "\n\n".join(
            part for part in (normalize_multiline(prompt.title), normalize_multiline(prompt.content)) if part
        ).strip()
        if block:
            sections.append(block)

    base_prompt = PROMPT_SEPARATOR.join(sections)
    system_prompt = build_system_prompt_text(base_prompt)
    return PromptBase(
        base_prompt=base_prompt,
        system_prompt=system_prompt,
        prompt_base_hash=hash_prompt(system_prompt),
    )


def build_article_context(article: Article, feed: Optional[Feed] = None) -> str:
    parts: List[str] = [f"News internal ID: {article.id}"]

    if feed is not None:
        feed_parts = [text for text in (feed.title, f"URL: {feed.url}" if feed.url else None) if text]
        if feed_parts:
            parts.append(f"Feed: {' · '.join(feed_parts)}")

    if article.title:
        parts.append(f"Title: {article.title}")
    if article.published_at:
        parts.append(f"Published at: {article.published_at.isoformat()}")
    if article.content_snippet:
        parts.append(f"Summary: {article.content_snippet}")
    if article.raw_content_html:
        parts.append(f"HTML content:\n{article.raw_content_html}")
    if article.link:
        parts.append(f"Link: {article.link}")
    if article.guid:
        parts.append(f"GUID: {article.guid}")

    return "\n\n".join(parts)


def map_article_for_payload(article: Article, feed: Optional[Feed] = None) -> Dict[str, Any]:
    return {
        "id": article.id,
        "title": article.title,
        "content_snippet": article.content_snippet,
        "article_html": article.raw_content_html,
        "link": article.link,
        "guid": article.guid,
        "published_at": article.published_at.isoformat() if article.published_at else None,
        "feed": (
            {"id": feed.id, "title": feed.title, "url": feed.url or None}
            if feed is not None
            else None
        ),
    }


def _message(role: str, text: str) -> Dict[str, Any]:
    return {"role": role, "content": [{"type": INPUT_CONTENT_TYPE, "text": text}] if text else []}


def build_news_payload(article: Article, feed: Optional[Feed] = None) -> Dict[str, Any]:
    """Article view plus the user message exactly as ``build_generation_payload`` sends it."""
    context = build_article_context(article, feed)
    return {
        "article": map_article_for_payload(article, feed),
        "message": _message("user", context),
        "context": context,
    }


def build_generation_payload(
    article: Article,
    system_prompt: str,
    model: str,
    feed: Optional[Feed] = None,
) -> Dict[str, Any]:
    """Responses API request body for one article."""
    context = build_article_context(article, feed)
    return {
        "model": model,
        "input": [_message("system", system_prompt), _message("user", context)],
    }
