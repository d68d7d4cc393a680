"""Registry of the settings scriptpool reads from the settings file or environment.

Each setting is declared once with its group, description, allowed values
and default. The registry is the only place defaults live; ``Environment``
and the ``scriptpool settings`` command both read them from here.
"""

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class Setting:
    package_name: str
    env_var: str
    group: str
    description: str
    enum: List[str] | None = None
    default: str | None = None

    def check(self, value: Any) -> str:
        """Return ``value`` as a string, rejecting values outside ``enum``.

        Raises:
            ValueError: If the setting has allowed values and ``value`` is not one.
        """
        text = str(value)
        if self.enum is not None and text not in self.enum:
            raise ValueError(f"{self.env_var} must be one of {', '.join(self.enum)}, got {value!r}")
        return text


# Keyed by env var so that registering a name again replaces the earlier entry
_registry: Dict[str, Setting] = {}


def register_setting(
    package_name: str,
    env_var: str,
    group: str,
    description: str,
    enum: List[str] | None = None,
    default: str | None = None,
) -> Setting:
    """Register a setting, replacing any earlier one with the same env var.

    Args:
        package_name: Package that owns the setting.
        env_var: Environment variable and settings file key.
        group: Heading the setting is listed under.
        description: Human readable description.
        enum: Allowed values, or None for free-form values.
        default: Value used when neither the settings file nor the
            environment provides one.

    Returns:
        The registered setting.
    """
    if enum is not None and default is not None and default not in enum:
        raise ValueError(f"Default {default!r} for {env_var} is not one of {', '.join(enum)}")
    setting = Setting(
        package_name=package_name,
        env_var=env_var,
        group=group,
        description=description,
        enum=enum,
        default=default,
    )
    _registry.pop(env_var, None)
    _registry[env_var] = setting
    return setting


def get_setting(env_var: str) -> Setting:
    """Return the registered setting for ``env_var``.

    Raises:
        KeyError: If no setting is registered under that name.
    """
    try:
        return _registry[env_var]
    except KeyError:
        raise KeyError(f"Unknown setting: {env_var}") from None


def get_settings_registry() -> List[Setting]:
    """Return all registered settings in registration order."""
    return list(_registry.values())


def get_default_env() -> Dict[str, str | None]:
    """Return the default value of every registered setting."""
    return {s.env_var: s.default for s in _registry.values()}
