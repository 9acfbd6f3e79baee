"""Configuration schema models using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from backcast.utils.paths import get_feeds_dir

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class FetchConfig(BaseModel):
    """Upstream download settings."""

    timeout_seconds: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    user_agent: str = "backcast/0.1 (+https://github.com/backcast/backcast)"


class UpdateConfig(BaseModel):
    """Batch update settings."""

    concurrency: int = Field(default=5, ge=1)  # feeds fetched in parallel by update-all


class GlobalConfig(BaseModel):
    """Global Backcast configuration."""

    version: str = "1"
    feeds_dir: Path = Field(default_factory=get_feeds_dir)
    public_base_url: str = "http://localhost:8000"
    log_level: LogLevel = "INFO"

    fetch: FetchConfig = Field(default_factory=FetchConfig)
    update: UpdateConfig = Field(default_factory=UpdateConfig)

    @field_validator("public_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an absolute http(s) URL and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"public_base_url must start with http:// or https://: {v}")
        return v.rstrip("/")

    @field_validator("feeds_dir")
    @classmethod
    def expand_feeds_dir(cls, v: Path) -> Path:
        """Expand ``~`` in the feeds directory."""
        return v.expanduser()
