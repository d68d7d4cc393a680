from typing import Any

from scriptpool.engines.base import ScriptEngine
from scriptpool.engines.python_engine import PythonScriptEngine
from scriptpool.engines.shell_engine import ShellScriptEngine

_ENGINES: dict[str, type[ScriptEngine]] = {
    PythonScriptEngine.name: PythonScriptEngine,
    ShellScriptEngine.name: ShellScriptEngine,
}


def get_engine(name: str | None = None, **kwargs: Any) -> ScriptEngine:
    """Instantiate an engine by name.

    With no name, the engine comes from the ``SCRIPTPOOL_ENGINE`` setting.
    The shell engine picks up ``SCRIPTPOOL_SHELL`` and
    ``SCRIPTPOOL_SCRIPT_TIMEOUT`` unless overridden via ``kwargs``.

    Raises:
        ValueError: If no engine is registered under ``name``.
    """
    from scriptpool.config.environment import Environment

    name = (name or Environment.get_engine()).lower()
    try:
        engine_cls = _ENGINES[name]
    except KeyError:
        raise ValueError(f"Unknown script engine {name!r}; choose from {', '.join(sorted(_ENGINES))}") from None

    if engine_cls is ShellScriptEngine:
        kwargs.setdefault("command", Environment.get_shell_command())
        kwargs.setdefault("timeout_seconds", Environment.get_script_timeout())
    return engine_cls(**kwargs)


def available_engines() -> list[str]:
    return sorted(_ENGINES)


__all__ = [
    "PythonScriptEngine",
    "ScriptEngine",
    "ShellScriptEngine",
    "available_engines",
    "get_engine",
]
