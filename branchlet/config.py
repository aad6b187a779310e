# branchlet/config.py
# Description: Configuration management for branchlet.
#
# Imports
import copy
import os
import sys
if sys.version_info < (3, 11):
    import tomli as tomllib
else:
    import tomllib
from pathlib import Path
import toml
from typing import Dict, Any, Optional
#
# Third-Party Imports
from loguru import logger
from pydantic import BaseModel, Field
#
#######################################################################################################################
#
# Functions:

# --- Path to the CLI's configuration file ---
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "branchlet" / "config.toml"

# --- Default data directory (local tree cache, logs) ---
BASE_DATA_DIR_CLI = Path.home() / ".local" / "share" / "branchlet"

CONFIG_TOML_CONTENT = """
# Configuration for branchlet
# This file is created with these defaults on first run.

[github]
# Personal access token with 'repo' scope. Prefer the environment variable.
api_token = "<your-github-token>"
api_token_env_var = "GITHUB_API_TOKEN"
# Resolved automatically from the token and saved here.
owner = ""
repository = "Branchlet-nts"
api_base_url = "https://api.github.com"
request_timeout = 30.0

[sync]
max_retries = 3
retry_base_delay = 1.0
write_delay = 0.1
# Remote file holding the parent/child map.
structure_path = "structure.json"
# Seconds between automatic pulls; 0 disables auto-sync.
auto_sync_interval = 0
cascade_remote_delete = true
success_display_seconds = 3.0
error_display_seconds = 5.0

[logging]
log_level = "INFO"
log_filename = "branchlet.log"
log_rotation = "10 MB"
log_retention = 3

[paths]
data_dir = "~/.local/share/branchlet"
local_cache_filename = "notes_cache.json"
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}. Application cannot start correctly.")
    DEFAULT_CONFIG_FROM_TOML = {}  # Should not happen with valid TOML string


def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update_dict into base_dict."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _get_typed_value(data_dict: Dict, key: str, default: Any, target_type: type = str) -> Any:
    """Helper to get value from dict and cast to type, with logging for type errors."""
    value = data_dict.get(key, default)
    if value is default and default is not None:  # if value is the default, it's already typed
        return value
    if value is None:  # If key is missing and default is None
        return None

    try:
        if target_type == bool:
            if isinstance(value, bool):
                return value
            return str(value).lower() in ['true', '1', 't', 'y', 'yes']
        if target_type == Path:
            return Path(value).expanduser() if value else default
        return target_type(value)
    except (ValueError, TypeError) as e:
        logger.warning(f"Config key '{key}' has value '{value}' which could not be converted to {target_type}. Using default: '{default}'. Error: {e}")
        return default


# --- Primary Configuration Loading Logic for the CLI ---
_CONFIG_CACHE: Optional[Dict[str, Any]] = None


def load_cli_config_and_ensure_existence(force_reload: bool = False) -> Dict[str, Any]:
    """
    Loads settings from ~/.config/branchlet/config.toml.
    If the file doesn't exist, it's created with default values from CONFIG_TOML_CONTENT.
    Uses programmatic defaults (from CONFIG_TOML_CONTENT) as a base.
    """
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None and not force_reload:
        return _CONFIG_CACHE

    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    if not DEFAULT_CONFIG_PATH.exists():
        logger.info(f"Config file not found at {DEFAULT_CONFIG_PATH}. Creating with default values.")
        try:
            DEFAULT_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
            with open(DEFAULT_CONFIG_PATH, "w", encoding="utf-8") as f:
                f.write(CONFIG_TOML_CONTENT)
            logger.info(f"Created default config file at {DEFAULT_CONFIG_PATH}")
            loaded_config["_first_run"] = True
        except OSError as e:
            logger.error(f"Could not create default config file {DEFAULT_CONFIG_PATH}: {e}. Using internal defaults.")
            logger.info(f"You may need to manually create the directory: {DEFAULT_CONFIG_PATH.parent}")
    else:
        logger.debug(f"Attempting to load config from: {DEFAULT_CONFIG_PATH}")
        try:
            with open(DEFAULT_CONFIG_PATH, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.debug(f"Successfully loaded and merged config from {DEFAULT_CONFIG_PATH}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {DEFAULT_CONFIG_PATH}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config {DEFAULT_CONFIG_PATH}: {e}. Using internal defaults.")

    _CONFIG_CACHE = loaded_config
    return _CONFIG_CACHE


def save_setting_to_cli_config(section: str, key: str, value: Any) -> bool:
    """
    Saves a specific setting to the user's TOML configuration file.

    Reads the current file, updates ``key`` within ``section`` (dotted names
    create nested tables), writes the whole file back and reloads the cache.

    Args:
        section: The name of the TOML section (e.g., "github").
        key: The key within the section to update.
        value: The new value for the key.

    Returns:
        True if the setting was saved successfully, False otherwise.
    """
    global _CONFIG_CACHE
    logger.info(f"Attempting to save setting: [{section}].{key}")

    try:
        DEFAULT_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create config directory {DEFAULT_CONFIG_PATH.parent}: {e}")
        return False

    config_data: Dict[str, Any] = {}
    if DEFAULT_CONFIG_PATH.exists():
        try:
            with open(DEFAULT_CONFIG_PATH, "rb") as f:
                config_data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Corrupted config file at {DEFAULT_CONFIG_PATH}. Cannot save. Please fix or delete it. Error: {e}")
            return False
        except OSError as e:
            logger.error(f"Unexpected error reading {DEFAULT_CONFIG_PATH}: {e}")
            return False

    current_level = config_data
    try:
        for part in section.split('.'):
            current_level = current_level.setdefault(part, {})
        current_level[key] = value
    except (TypeError, AttributeError):
        logger.error(
            f"Configuration structure conflict. Could not set '{key}' in section '{section}' "
            f"because a part of the path is not a table. Please check your config file."
        )
        return False

    try:
        with open(DEFAULT_CONFIG_PATH, "w", encoding="utf-8") as f:
            toml.dump(config_data, f)
        logger.success(f"Successfully saved setting to {DEFAULT_CONFIG_PATH}")
        _CONFIG_CACHE = None
        load_cli_config_and_ensure_existence(force_reload=True)
        return True
    except (IOError, TypeError) as e:
        logger.error(f"Failed to write updated config to {DEFAULT_CONFIG_PATH}: {e}")
        return False


# --- CLI Setting Getter ---
def get_cli_setting(section: str, key: str, default: Any = None) -> Any:
    """Helper to get a specific setting from the loaded CLI configuration."""
    config = load_cli_config_and_ensure_existence()
    section_data = config.get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


# --- Data and Log File Path Getters ---
def get_cli_data_dir() -> Path:
    """Get the data directory for the local tree cache and logs."""
    data_dir = _get_typed_value(
        load_cli_config_and_ensure_existence().get("paths", {}), "data_dir", BASE_DATA_DIR_CLI, Path
    )
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_cli_log_file_path() -> Path:
    log_filename = get_cli_setting("logging", "log_filename", "branchlet.log")
    return get_cli_data_dir() / log_filename


def get_local_cache_path() -> Path:
    cache_filename = get_cli_setting("paths", "local_cache_filename", "notes_cache.json")
    return get_cli_data_dir() / cache_filename


# --- Sync configuration object ---
class SyncConfig(BaseModel):
    """Everything the sync engine needs, passed in explicitly instead of read from globals."""
    token: Optional[str] = None
    owner: Optional[str] = None
    repository: str = "Branchlet-nts"
    api_base_url: str = "https://api.github.com"
    request_timeout: float = Field(default=30.0, gt=0)
    structure_path: str = "structure.json"
    max_retries: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    write_delay: float = Field(default=0.1, ge=0)
    auto_sync_interval: int = Field(default=0, ge=0)
    cascade_remote_delete: bool = True
    success_display_seconds: float = Field(default=3.0, ge=0)
    error_display_seconds: float = Field(default=5.0, ge=0)


def resolve_api_token(explicit_token: Optional[str] = None) -> Optional[str]:
    """Token from: 1) argument, 2) env var named in config, 3) config file (placeholders ignored)."""
    if explicit_token:
        return explicit_token
    env_var = get_cli_setting("github", "api_token_env_var", "GITHUB_API_TOKEN")
    token = os.getenv(env_var)
    if token:
        return token
    config_token = get_cli_setting("github", "api_token", "")
    if config_token and not (config_token.startswith("<") and config_token.endswith(">")):
        return config_token
    return None


def load_sync_config(token: Optional[str] = None, **overrides: Any) -> SyncConfig:
    """
    Build a SyncConfig from the TOML settings.

    Args:
        token: Explicit API token taking precedence over env var and file
        **overrides: Field values replacing whatever the config file says
    """
    config = load_cli_config_and_ensure_existence()
    github = config.get("github", {})
    sync = config.get("sync", {})

    values: Dict[str, Any] = {
        "token": resolve_api_token(token),
        "owner": _get_typed_value(github, "owner", "") or None,
        "repository": _get_typed_value(github, "repository", "Branchlet-nts"),
        "api_base_url": _get_typed_value(github, "api_base_url", "https://api.github.com"),
        "request_timeout": _get_typed_value(github, "request_timeout", 30.0, float),
        "max_retries": _get_typed_value(sync, "max_retries", 3, int),
        "retry_base_delay": _get_typed_value(sync, "retry_base_delay", 1.0, float),
        "write_delay": _get_typed_value(sync, "write_delay", 0.1, float),
        "structure_path": _get_typed_value(sync, "structure_path", "structure.json"),
        "auto_sync_interval": _get_typed_value(sync, "auto_sync_interval", 0, int),
        "cascade_remote_delete": _get_typed_value(sync, "cascade_remote_delete", True, bool),
        "success_display_seconds": _get_typed_value(sync, "success_display_seconds", 3.0, float),
        "error_display_seconds": _get_typed_value(sync, "error_display_seconds", 5.0, float),
    }
    values.update(overrides)
    return SyncConfig(**values)

#
# End of config.py
#######################################################################################################################
