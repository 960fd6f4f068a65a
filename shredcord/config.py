import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

TOKEN_ENV = "DISCORD_TOKEN"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "archive_dir": "./archive",
    "quiet_window": 30,
    "search_delay": 10,
    "delete_delay": 0,
    "max_empty_pages": 3,
    "max_retries": 5,
    "dry_run": False,
    "log_file": "shredcord.log",
}


def load_token(token_arg: Optional[str] = None, env_file: str = ".env") -> str:
    """Load the Discord token.

    Priority:
        1. --token command-line argument
        2. DISCORD_TOKEN environment variable
        3. .env file in current directory
    """
    if token_arg:
        logger.info("Using token from command-line argument")
        return token_arg

    if os.environ.get(TOKEN_ENV):
        logger.info("Using token from environment variable")
        return os.environ[TOKEN_ENV]

    path = Path(env_file)
    if path.exists():
        with open(path, 'r') as f:
            for line in f:
                line = line.strip()
                if line.startswith(f'{TOKEN_ENV}='):
                    logger.info("Using token from .env file")
                    return line.split('=', 1)[1].strip().strip('"\'')

    raise ConfigError(f"No Discord token found: pass --token, set {TOKEN_ENV}, "
                      f"or add {TOKEN_ENV}=... to {env_file}")


def load_settings(path: Optional[str] = None, **overrides: Any) -> Dict[str, Any]:
    """Defaults, then the config file's ``settings`` block, then non-None overrides."""
    settings = dict(DEFAULT_SETTINGS)

    if path:
        try:
            with open(path, 'r') as f:
                config = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e
        file_settings = config.get('settings', {}) if isinstance(config, dict) else None
        if not isinstance(file_settings, dict):
            raise ConfigError(f"'settings' in {path} must be an object")
        _merge(settings, file_settings, source=path)

    _merge(settings, {k: v for k, v in overrides.items() if v is not None}, source="command line")
    return settings


def _merge(settings: Dict[str, Any], extra: Dict[str, Any], source: str) -> None:
    unknown = sorted(set(extra) - set(DEFAULT_SETTINGS))
    if unknown:
        raise ConfigError(f"Unknown settings from {source}: {', '.join(unknown)}")
    settings.update(extra)
