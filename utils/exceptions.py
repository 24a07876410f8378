"""
Custom Exceptions
Error taxonomy for the post-generation engine
"""
from typing import Any, Optional


class PostGenError(Exception):
    """Base exception for the post-generation engine"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PostGenError):
    """Invalid static configuration"""
    pass


class ConfigLoadError(PostGenError):
    """Per-owner configuration could not be resolved"""

    def __init__(self, message: str, owner_key: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.owner_key = owner_key


class StorageError(PostGenError):
    """Storage collaborator failure"""
    pass


class ArticleNotFoundError(PostGenError):
    """Article missing, not owned by the caller, or not eligible"""

    def __init__(self, article_id: Optional[int] = None):
        super().__init__("Article not found for preview", {"article_id": article_id} if article_id is not None else None)
        self.article_id = article_id


class CooldownActiveError(PostGenError):
    """A run was requested before the owner's cooldown elapsed"""

    def __init__(self, seconds_remaining: int, owner_key: str = None):
        super().__init__(
            "Post refresh cooldown is still active",
            {"seconds_remaining": seconds_remaining},
        )
        self.seconds_remaining = seconds_remaining
        self.owner_key = owner_key


class RunInProgressError(PostGenError):
    """A run is already executing for the owner"""

    def __init__(self, owner_key: str):
        super().__init__("A generation run is already in progress", {"owner_key": owner_key})
        self.owner_key = owner_key


class ProgressInvariantError(PostGenError):
    """Progress update would move a phase backwards or decrease a counter"""
    pass


class GenerationError(PostGenError):
    """
    Typed failure of one generation call.

    The client adapter returns instances of this class instead of raising them,
    so the coordinator can decide per kind whether to retry.
    """

    def __init__(
        self,
        message: str,
        kind: Any,
        status: Optional[int] = None,
        raw_payload: Any = None,
    ):
        super().__init__(message, {"kind": getattr(kind, "value", kind), "status": status})
        self.kind = kind
        self.status = status
        self.raw_payload = raw_payload
