"""User configuration loader for secretspec.

The user config lives outside the project, following the XDG Base Directory
standard, and holds the default provider and profile:

    defaults:
      provider: keyring://
      profile: development
    profiles:
      production:
        provider: gcsm://my-gcp-project
"""
import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional
import yaml

from .errors import ConfigParseError
from .models import UserConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SECRETSPEC_CONFIG"


def get_config_path() -> Path:
    """
    Get user config file path.

    Priority order:
    1. SECRETSPEC_CONFIG environment variable
    2. $XDG_CONFIG_HOME/secretspec/config.yml
    3. ~/.config/secretspec/config.yml

    Returns:
        Path to the config file (which may not exist yet)
    """
    # 1. Explicit override
    override = os.getenv(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()

    # 2. XDG location
    xdg_home = os.getenv("XDG_CONFIG_HOME")
    if xdg_home:
        return Path(xdg_home) / "secretspec" / "config.yml"

    # 3. Default location
    return Path.home() / ".config" / "secretspec" / "config.yml"


def _optional_str(value: Any, name: str, config_path: Path) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigParseError(f"'{name}' must be a string in {config_path}")
    return value or None


def load_user_config(config_path: Optional[Path] = None) -> UserConfig:
    """
    Load user configuration from YAML file.

    A missing file is not an error: it yields an empty UserConfig so that the
    built-in fallbacks apply.

    Args:
        config_path: Explicit path (defaults to get_config_path())

    Returns:
        UserConfig

    Raises:
        ConfigParseError: If the file is unreadable, invalid YAML, or has wrong types
    """
    # Get config path dynamically each time (not cached at module level)
    config_path = Path(config_path) if config_path else get_config_path()

    if not config_path.exists():
        logger.debug(f"No user config at {config_path}, using built-in defaults")
        return UserConfig()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse YAML config at {config_path}: {e}") from e
    except OSError as e:
        raise ConfigParseError(f"Failed to read config file at {config_path}: {e}") from e

    if not config:
        return UserConfig()

    if not isinstance(config, dict):
        raise ConfigParseError(f"Config file at {config_path} must contain a mapping")

    defaults = config.get('defaults') or {}
    if not isinstance(defaults, dict):
        raise ConfigParseError(f"'defaults' section must be a mapping in {config_path}")

    profiles_section = config.get('profiles') or {}
    if not isinstance(profiles_section, dict):
        raise ConfigParseError(f"'profiles' section must be a mapping in {config_path}")

    profile_providers: Dict[str, str] = {}
    for name, section in profiles_section.items():
        if not isinstance(section, dict):
            raise ConfigParseError(f"'profiles.{name}' must be a mapping in {config_path}")
        provider = _optional_str(section.get('provider'), f"profiles.{name}.provider", config_path)
        if provider:
            profile_providers[str(name)] = provider

    user_config = UserConfig(
        provider=_optional_str(defaults.get('provider'), "defaults.provider", config_path),
        profile=_optional_str(defaults.get('profile'), "defaults.profile", config_path),
        profiles=profile_providers,
    )
    logger.debug(f"User config loaded from {config_path}")
    return user_config


def save_user_config(user_config: UserConfig, config_path: Optional[Path] = None) -> Path:
    """
    Save user configuration to YAML file, creating the directory if needed.

    Args:
        user_config: Configuration to persist
        config_path: Explicit path (defaults to get_config_path())

    Returns:
        Path the config was written to
    """
    config_path = Path(config_path) if config_path else get_config_path()

    data: Dict[str, Any] = {}
    defaults = {}
    if user_config.provider:
        defaults['provider'] = user_config.provider
    if user_config.profile:
        defaults['profile'] = user_config.profile
    if defaults:
        data['defaults'] = defaults
    if user_config.profiles:
        data['profiles'] = {
            name: {'provider': provider}
            for name, provider in sorted(user_config.profiles.items())
        }

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        logger.error(f"Failed to save config to {config_path}: {e}")
        raise

    logger.info(f"User config saved to {config_path}")
    return config_path
