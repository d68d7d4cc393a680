"""Value types shared by engines, handles and the pool."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

Parameter = tuple[str, Any]
Parameters = tuple[Parameter, ...]
ParametersInput = Mapping[str, Any] | Iterable[Parameter] | None
StateBag = Mapping[str, Any]

CompletionHandler = Callable[[list["ResultRecord"], StateBag], None]
ErrorHandler = Callable[[BaseException, StateBag], None]


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAULTED = "faulted"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class ResultRecord:
    """A single structured value produced by a script run.

    Named fields are read from the wrapped value: keys of a mapping, or
    public attributes of any other object. ``str(record)`` renders the
    value itself so plain string output prints naturally.
    """

    value: Any

    @property
    def properties(self) -> dict[str, Any]:
        if isinstance(self.value, Mapping):
            return dict(self.value)
        attrs = getattr(self.value, "__dict__", None)
        if attrs is None:
            return {}
        return {k: v for k, v in attrs.items() if not k.startswith("_")}

    def __getitem__(self, name: str) -> Any:
        return self.properties[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)

    def __str__(self) -> str:
        return str(self.value)


def normalize_parameters(parameters: ParametersInput) -> Parameters:
    """Return parameters as an ordered tuple of ``(name, value)`` pairs.

    Accepts a mapping or any iterable of pairs. The result is a fresh tuple,
    so later changes to the caller's collection do not reach a submission.

    Raises:
        ValueError: If a name is empty, not a string, or repeated.
    """
    if parameters is None:
        return ()

    items = parameters.items() if isinstance(parameters, Mapping) else parameters
    seen: set[str] = set()
    normalized: list[Parameter] = []
    for item in items:
        try:
            name, value = item
        except (TypeError, ValueError):
            raise ValueError(f"Parameters must be (name, value) pairs, got {item!r}") from None
        if not isinstance(name, str) or not name:
            raise ValueError(f"Parameter names must be non-empty strings, got {name!r}")
        if name in seen:
            raise ValueError(f"Duplicate parameter name: {name}")
        seen.add(name)
        normalized.append((name, value))
    return tuple(normalized)


@dataclass(frozen=True)
class Submission:
    """One request to run script text on a pooled context."""

    script: str
    parameters: Parameters = ()
    state_bag: StateBag = field(default_factory=dict)
    on_complete: CompletionHandler | None = None
    on_error: ErrorHandler | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    submitted_at: datetime = field(default_factory=datetime.now)
