"""Configuration manager for loading and saving Backcast config."""

from pathlib import Path

import yaml

from backcast.config.defaults import DEFAULT_GLOBAL_CONFIG, get_default_config_content
from backcast.config.schema import GlobalConfig
from backcast.utils.errors import InvalidConfigError
from backcast.utils.paths import get_config_dir


class ConfigManager:
    """Manages the Backcast configuration file."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize the config manager.

        Args:
            config_dir: Optional custom config directory. Defaults to XDG config dir.
        """
        self.config_dir = config_dir or get_config_dir()
        self.config_file = self.config_dir / "config.yaml"

    def load_config(self) -> GlobalConfig:
        """Load and validate global configuration.

        Returns:
            Validated GlobalConfig instance

        Raises:
            InvalidConfigError: If config is invalid
        """
        if not self.config_file.exists():
            self._create_default_config()
            return DEFAULT_GLOBAL_CONFIG.model_copy(deep=True)

        try:
            with open(self.config_file) as f:
                data = yaml.safe_load(f) or {}
            return GlobalConfig(**data)
        except Exception as e:
            raise InvalidConfigError(
                f"Invalid configuration in {self.config_file}: {e}"
            ) from e

    def save_config(self, config: GlobalConfig) -> None:
        """Save global configuration.

        Args:
            config: GlobalConfig instance to save
        """
        data = config.model_dump(mode="json")

        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    def set_value(self, key: str, value: str) -> GlobalConfig:
        """Set a (possibly dotted) config key from its string form and save.

        Args:
            key: Field name, e.g. ``public_base_url`` or ``update.concurrency``
            value: New value as typed on the command line

        Returns:
            The updated, re-validated configuration

        Raises:
            InvalidConfigError: If the key is unknown or the value is invalid
        """
        config = self.load_config()
        data = config.model_dump(mode="json")

        parts = key.split(".")
        target = data
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                raise InvalidConfigError(f"Unknown config key: {key}")
            target = target[part]

        if parts[-1] not in target or isinstance(target[parts[-1]], dict):
            raise InvalidConfigError(f"Unknown config key: {key}")

        target[parts[-1]] = yaml.safe_load(value)

        try:
            updated = GlobalConfig(**data)
        except Exception as e:
            raise InvalidConfigError(f"Invalid value for {key}: {e}") from e

        self.save_config(updated)
        return updated

    def _create_default_config(self) -> None:
        """Create default config.yaml file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(get_default_config_content())
