"""Shared runtime singletons for web/CLI entrypoints."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from config import get_posts_settings
from core import Article, Feed, Prompt
from generation.client import GenerationClient
from generation.preview import PreviewBuilder
from orchestrator.coordinator import GenerationRunCoordinator
from storage.memory import InMemoryArticleStore, InMemoryPromptStore, SettingsOwnerConfigSource


logger = logging.getLogger(__name__)


_STORE = InMemoryArticleStore()
_PROMPTS = InMemoryPromptStore()
_CONFIG_SOURCE = SettingsOwnerConfigSource()
_CLIENT = GenerationClient.from_settings()
_COORDINATOR = GenerationRunCoordinator(
    store=_STORE,
    prompts=_PROMPTS,
    config_source=_CONFIG_SOURCE,
    client=_CLIENT,
)
_PREVIEW_BUILDER = PreviewBuilder(
    store=_STORE,
    prompts=_PROMPTS,
    config_source=_CONFIG_SOURCE,
    client=_CLIENT,
    max_post_attempts=get_posts_settings().max_post_attempts,
)


def get_article_store() -> InMemoryArticleStore:
    return _STORE


def get_prompt_store() -> InMemoryPromptStore:
    return _PROMPTS


def get_config_source() -> SettingsOwnerConfigSource:
    return _CONFIG_SOURCE


def get_generation_client() -> GenerationClient:
    return _CLIENT


def get_coordinator() -> GenerationRunCoordinator:
    return _COORDINATOR


def get_preview_builder() -> PreviewBuilder:
    return _PREVIEW_BUILDER


def load_seed(
    path: Union[str, Path],
    *,
    store: Optional[InMemoryArticleStore] = None,
    prompts: Optional[InMemoryPromptStore] = None,
    config_source: Optional[SettingsOwnerConfigSource] = None,
) -> Dict[str, int]:
    """
    Load feeds, articles, prompts and owner parameters from a JSON file.

    Expected keys: ``feeds``, ``articles``, ``prompts`` (lists of objects) and
    ``owner_configs`` (owner key to parameter overrides). Missing keys are
    skipped. Defaults to the process-wide runtime stores.
    """
    store = store or get_article_store()
    prompts = prompts or get_prompt_store()
    config_source = config_source or get_config_source()

    data = json.loads(Path(path).read_text(encoding="utf-8"))
    for item in data.get("feeds") or []:
        store.add_feed(Feed(**item))
    for item in data.get("articles") or []:
        store.add_article(Article(**item))
    for item in data.get("prompts") or []:
        prompts.add_prompt(Prompt(**item))
    for owner_key, fields in (data.get("owner_configs") or {}).items():
        config_source.set_owner_config(owner_key, **fields)

    counts = {
        "feeds": len(data.get("feeds") or []),
        "articles": len(data.get("articles") or []),
        "prompts": len(data.get("prompts") or []),
        "owner_configs": len(data.get("owner_configs") or {}),
    }
    logger.info("Seed loaded from %s: %s", path, counts)
    return counts
