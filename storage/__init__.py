"""
Storage Module
Collaborator interfaces and in-memory implementations
"""
from .base import ArticleStore, OwnerConfigSource, PromptSource
from .memory import InMemoryArticleStore, InMemoryPromptStore, SettingsOwnerConfigSource

__all__ = [
    "ArticleStore",
    "OwnerConfigSource",
    "PromptSource",
    "InMemoryArticleStore",
    "InMemoryPromptStore",
    "SettingsOwnerConfigSource",
]
