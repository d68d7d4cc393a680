import os
import shlex
from pathlib import Path
from typing import Any, Dict, Optional

from scriptpool.config.configuration import get_default_env, get_setting
from scriptpool.config.settings import NOT_GIVEN, get_value, load_settings

"""
Environment Configuration Management Module

Centralizes configuration for scriptpool. Values are looked up in this order:

- Settings file (settings.yaml)
- Environment variables (including .env files)
- Defaults declared with each registered setting

The Environment class exposes typed class methods for every pool and engine
setting so callers never parse raw strings themselves.
"""


def load_dotenv_files():
    """Load environment variables from .env files in the working directory."""
    from dotenv import load_dotenv

    env_name = os.environ.get("ENV", "development")

    # Later files do not override earlier ones or the real environment
    env_files = [
        Path.cwd() / ".env",
        Path.cwd() / f".env.{env_name}",
        Path.cwd() / f".env.{env_name}.local",
    ]

    for env_file in env_files:
        if env_file.exists():
            load_dotenv(env_file, override=False)


class Environment(object):
    """
    Manages settings and environment variables with defaults and type conversions.

    Settings are read lazily from the YAML settings file on first access and
    cached; call :meth:`reload` after changing the file or process
    environment in a long-running process.
    """

    settings: Optional[Dict[str, Any]] = None

    @classmethod
    def load_settings(cls):
        load_dotenv_files()
        cls.settings = load_settings()

    @classmethod
    def reload(cls):
        cls.settings = None
        cls.load_settings()

    @classmethod
    def get_settings(cls) -> Dict[str, Any]:
        if cls.settings is None:
            cls.load_settings()
        assert cls.settings is not None
        return cls.settings

    @classmethod
    def get(cls, key: str, default: Any = NOT_GIVEN):
        return get_value(key, cls.get_settings(), get_default_env(), default)

    @classmethod
    def _get_choice(cls, key: str) -> str:
        return get_setting(key).check(str(cls.get(key)).lower())

    @classmethod
    def _get_int(cls, key: str) -> Optional[int]:
        raw = cls.get(key, None)
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be an integer, got {raw!r}") from None

    @classmethod
    def _get_float(cls, key: str) -> Optional[float]:
        raw = cls.get(key, None)
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be a number, got {raw!r}") from None

    @classmethod
    def get_engine(cls) -> str:
        """
        Name of the script engine for new pools ("python" or "shell").
        """
        return cls._get_choice("SCRIPTPOOL_ENGINE")

    @classmethod
    def get_min_contexts(cls) -> int:
        value = cls._get_int("SCRIPTPOOL_MIN_CONTEXTS")
        return 1 if value is None else value

    @classmethod
    def get_max_contexts(cls) -> int:
        value = cls._get_int("SCRIPTPOOL_MAX_CONTEXTS")
        return 4 if value is None else value

    @classmethod
    def get_queue_size(cls) -> Optional[int]:
        """
        Queued submissions allowed beyond the running ones, None for unbounded.
        """
        return cls._get_int("SCRIPTPOOL_QUEUE_SIZE")

    @classmethod
    def get_exhausted_policy(cls) -> str:
        return cls._get_choice("SCRIPTPOOL_EXHAUSTED_POLICY")

    @classmethod
    def get_acquire_timeout(cls) -> Optional[float]:
        return cls._get_float("SCRIPTPOOL_ACQUIRE_TIMEOUT")

    @classmethod
    def get_shell_command(cls) -> list[str]:
        """
        Interpreter argv for the shell engine, e.g. ``["bash", "-c"]``.
        """
        return shlex.split(str(cls.get("SCRIPTPOOL_SHELL")))

    @classmethod
    def get_script_timeout(cls) -> Optional[float]:
        return cls._get_float("SCRIPTPOOL_SCRIPT_TIMEOUT")

    @classmethod
    def get_log_level(cls):
        """Return desired log level string.

        Priority:
        1) Explicit LOG_LEVEL from the environment
        2) If DEBUG env is truthy, return "DEBUG"
        3) SCRIPTPOOL_LOG_LEVEL env (default "INFO")
        """
        level = os.getenv("LOG_LEVEL")
        if level:
            return str(level).upper()
        debug_env = os.getenv("DEBUG")
        if debug_env and debug_env.lower() not in ("0", "false", "no", "off", ""):
            return "DEBUG"
        return os.getenv("SCRIPTPOOL_LOG_LEVEL", "INFO").upper()
