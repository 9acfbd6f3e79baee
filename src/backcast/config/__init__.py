"""Configuration loading for Backcast."""

from backcast.config.manager import ConfigManager
from backcast.config.schema import FetchConfig, GlobalConfig, UpdateConfig

__all__ = ["ConfigManager", "GlobalConfig", "FetchConfig", "UpdateConfig"]
