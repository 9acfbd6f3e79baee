"""XDG-style default locations for Backcast files."""

from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "backcast"


def get_config_dir() -> Path:
    """Directory holding config.yaml."""
    return Path(user_config_dir(APP_NAME))


def get_data_dir() -> Path:
    """Directory for persistent Backcast data."""
    return Path(user_data_dir(APP_NAME))


def get_feeds_dir() -> Path:
    """Default directory holding one sub-directory per feed."""
    return get_data_dir() / "feeds"
