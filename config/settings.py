"""
Settings Configuration
Pydantic-validated settings loaded from the environment / .env
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class OpenAISettings(BaseSettings):
    """Generation API configuration"""
    api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    base_url: Optional[str] = Field(default=None, description="Override for the API base URL")
    model: str = Field(default="gpt-4o-mini", description="Default model when an owner has none")
    timeout_seconds: float = Field(default=60.0, description="Per-call upstream timeout")

    class Config:
        env_prefix = "OPENAI_"


class RateLimitSettings(BaseSettings):
    """Backoff applied to rate-limited generation calls"""
    base_delay_ms: int = Field(default=1000, description="Delay before the second attempt")
    max_delay_ms: int = Field(default=30000, description="Upper bound for a single wait")
    max_attempts: int = Field(default=5, description="Calls allowed per article per run")

    class Config:
        env_prefix = "RATE_LIMIT_"


class PostsSettings(BaseSettings):
    """Run defaults used when an owner has no stored parameters"""
    window_days: int = Field(default=7, description="Article time window in days")
    cooldown_seconds: int = Field(default=3600, description="Minimum seconds between runs")
    max_post_attempts: int = Field(default=15, description="Lifetime calls per article before it is skipped (0 = unlimited)")
    error_reason_max_length: int = Field(default=240, description="Truncation length for stored error reasons")

    class Config:
        env_prefix = "POSTS_"


class LogSettings(BaseSettings):
    """Logging configuration"""
    level: str = Field(default="INFO", description="Log level name")
    file: Optional[str] = Field(default=None, description="Optional log file name under logs/")
    use_rich: bool = Field(default=True, description="Use Rich console output")

    class Config:
        env_prefix = "LOG_"


class Settings(BaseSettings):
    """Aggregate of all settings groups"""

    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    posts: PostsSettings = Field(default_factory=PostsSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings after applying an optional .env file"""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            openai=OpenAISettings(),
            rate_limit=RateLimitSettings(),
            posts=PostsSettings(),
            log=LogSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()


def get_openai_settings() -> OpenAISettings:
    return get_settings().openai


def get_rate_limit_settings() -> RateLimitSettings:
    return get_settings().rate_limit


def get_posts_settings() -> PostsSettings:
    return get_settings().posts


def get_log_settings() -> LogSettings:
    return get_settings().log
