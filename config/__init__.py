"""
Configuration Management Module
Environment-driven settings for the generation engine
"""
from .settings import (
    Settings,
    get_settings,
    get_openai_settings,
    get_rate_limit_settings,
    get_posts_settings,
    get_log_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "get_openai_settings",
    "get_rate_limit_settings",
    "get_posts_settings",
    "get_log_settings",
]
