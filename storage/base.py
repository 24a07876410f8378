"""
Storage Collaborators
Abstract interfaces the generation engine needs from persistence and config
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from core import Article, Feed, GeneratedPost, OwnerConfig, Prompt


class ArticleStore(ABC):
    """
    Article / feed / generated-post persistence.

    Feed ingestion owns the articles; the engine only reads them and
    upserts GeneratedPost rows.
    """

    @abstractmethod
    async def list_eligible_articles(self, owner_key: str, window_days: int, now: datetime) -> List[Article]:
        """
        Articles of the owner's feeds published within the window that have
        no SUCCESS post yet.

        Args:
            owner_key: owner identifier
            window_days: window length ending at ``now``
            now: reference time of the run

        Returns:
            Eligible articles (order is not guaranteed)
        """
        pass

    @abstractmethod
    async def list_feeds(self, owner_key: str) -> List[Feed]:
        """All feeds registered by the owner"""
        pass

    @abstractmethod
    async def get_generated_post(self, article_id: int) -> Optional[GeneratedPost]:
        """Current post for an article, if any"""
        pass

    @abstractmethod
    async def upsert_generated_post(self, post: GeneratedPost) -> GeneratedPost:
        """Insert or replace the post for ``post.article_id``; returns the stored copy"""
        pass


class PromptSource(ABC):
    """Owner prompt blocks"""

    @abstractmethod
    async def list_enabled_prompts_ordered(self, owner_key: str) -> List[Prompt]:
        """Enabled prompts ordered by position"""
        pass


class OwnerConfigSource(ABC):
    """Per-owner run parameters"""

    @abstractmethod
    async def get_owner_config(self, owner_key: str) -> OwnerConfig:
        """
        Resolve run parameters.

        Raises:
            ConfigLoadError: parameters cannot be resolved
        """
        pass
