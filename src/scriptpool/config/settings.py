"""Utility functions for reading and writing configuration files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml

from scriptpool.config.configuration import register_setting

# Constants
SETTINGS_FILE = "settings.yaml"
MISSING_MESSAGE = "Missing required setting: {}"
NOT_GIVEN = object()

# Built-in settings are registered here so that other packages can extend the
# configuration system via :func:`register_setting`.

register_setting(
    package_name="scriptpool",
    env_var="SCRIPTPOOL_ENGINE",
    group="Execution",
    description="Script engine used for new pools and contexts",
    enum=["python", "shell"],
    default="python",
)
register_setting(
    package_name="scriptpool",
    env_var="SCRIPTPOOL_MIN_CONTEXTS",
    group="Pool",
    description="Number of execution contexts created when a pool is opened",
    default="1",
)
register_setting(
    package_name="scriptpool",
    env_var="SCRIPTPOOL_MAX_CONTEXTS",
    group="Pool",
    description="Maximum number of scripts a pool runs at the same time",
    default="4",
)
register_setting(
    package_name="scriptpool",
    env_var="SCRIPTPOOL_QUEUE_SIZE",
    group="Pool",
    description=(
        "Number of submissions that may wait for a free context. "
        "Leave unset for an unbounded queue; 0 disables queuing."
    ),
)
register_setting(
    package_name="scriptpool",
    env_var="SCRIPTPOOL_EXHAUSTED_POLICY",
    group="Pool",
    description="What submit does when the queue is full: wait for capacity or fail immediately",
    enum=["block", "fail_fast"],
    default="block",
)
register_setting(
    package_name="scriptpool",
    env_var="SCRIPTPOOL_ACQUIRE_TIMEOUT",
    group="Pool",
    description="Seconds a blocking submit waits for queue capacity before giving up",
)
register_setting(
    package_name="scriptpool",
    env_var="SCRIPTPOOL_SHELL",
    group="Execution",
    description="Interpreter command for the shell engine; the script text is appended as the last argument",
    default="bash -c",
)
register_setting(
    package_name="scriptpool",
    env_var="SCRIPTPOOL_SCRIPT_TIMEOUT",
    group="Execution",
    description="Seconds before a shell engine subprocess is killed. Unset means no limit.",
)
register_setting(
    package_name="scriptpool",
    env_var="LOG_LEVEL",
    group="Logging",
    description="Log level for scriptpool loggers",
    enum=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    default="INFO",
)


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def get_system_file_path(filename: str) -> Path:
    """Return the path to the configuration file for the current OS."""
    import platform

    os_name = platform.system()
    if os_name in {"Linux", "Darwin"}:
        return Path.home() / ".config" / "scriptpool" / filename
    elif os_name == "Windows":
        appdata = os.getenv("APPDATA")
        if appdata is not None:
            return Path(appdata) / "scriptpool" / filename
        return Path("data") / filename
    return Path("data") / filename


def get_settings_path() -> Path:
    """Return the settings file path, honouring ``SCRIPTPOOL_SETTINGS_FILE``."""
    override = os.getenv("SCRIPTPOOL_SETTINGS_FILE")
    if override:
        return Path(override)
    return get_system_file_path(SETTINGS_FILE)


# ---------------------------------------------------------------------------
# Settings helpers
# ---------------------------------------------------------------------------


def load_settings() -> Dict[str, Any]:
    """Load settings from the YAML settings file."""
    settings_file = get_settings_path()

    settings: Dict[str, Any] = {}
    if settings_file.exists():
        with open(settings_file, "r") as f:
            settings = yaml.safe_load(f) or {}

    return settings


def save_settings(settings: Dict[str, Any]) -> None:
    """Save settings to the YAML settings file."""
    settings_file = get_settings_path()
    os.makedirs(os.path.dirname(settings_file), exist_ok=True)

    with open(settings_file, "w") as f:
        yaml.dump(settings, f)


def get_value(
    key: str,
    settings: Dict[str, Any],
    default_env: Dict[str, Any],
    default: Any = NOT_GIVEN,
) -> Any:
    """Retrieve a configuration value from settings, environment or defaults."""
    value = settings.get(key)
    if value is None or str(value) == "":
        value = os.environ.get(key)

    if value is None or str(value) == "":
        value = default_env.get(key, default)

    if value is not NOT_GIVEN:
        return value
    raise KeyError(MISSING_MESSAGE.format(key))
