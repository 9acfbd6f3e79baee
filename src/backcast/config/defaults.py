"""Default configuration values and file contents."""

from backcast.config.schema import GlobalConfig

DEFAULT_GLOBAL_CONFIG = GlobalConfig()


def get_default_config_content() -> str:
    """Commented config.yaml written on first run."""
    return f"""\
# Backcast configuration
version: "1"

# Where each feed's directory (schedule, cached upstream, output) lives
feeds_dir: '{DEFAULT_GLOBAL_CONFIG.feeds_dir}'

# Externally reachable address of the server that hosts feeds_dir
# Subscribe URLs look like <public_base_url>/podcasts/<feed>/backcast.rss
public_base_url: {DEFAULT_GLOBAL_CONFIG.public_base_url}

log_level: INFO

fetch:
  timeout_seconds: 30
  max_attempts: 3

update:
  concurrency: 5
"""
