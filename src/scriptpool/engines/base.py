from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from scriptpool.config.logging_config import get_logger
from scriptpool.context import ExecutionContext
from scriptpool.errors import ExecutionFault, InvalidScript
from scriptpool.types import Parameters, ParametersInput, ResultRecord, normalize_parameters

log = get_logger(__name__)


class ScriptEngine(ABC):
    """Base class for script engines.

    An engine turns script text plus bound parameters into an ordered list of
    :class:`ResultRecord` values, running inside an :class:`ExecutionContext`
    it created. Subclasses implement :meth:`execute` and may hook context
    setup and teardown.

    The public entrypoint is :meth:`invoke`, which validates the input, holds
    the context exclusively for the duration of the run and converts any
    failure into :class:`ExecutionFault`.
    """

    name: ClassVar[str] = "base"

    # ---- Context lifecycle ----
    def create_context(self, context_id: str | None = None) -> ExecutionContext:
        """Create a new context bound to this engine."""
        context = ExecutionContext(self, context_id)
        self.initialize_context(context)
        log.debug("created %r", context)
        return context

    def initialize_context(self, context: ExecutionContext) -> None:
        """Attach engine resources to a freshly created context."""
        pass

    def dispose_context(self, context: ExecutionContext) -> None:
        """Release engine resources attached to a context."""
        pass

    def validate_context(self, context: ExecutionContext) -> bool:
        """Return False if the context's resources are no longer usable."""
        return True

    # ---- Validation ----
    def validate_script(self, script: str) -> None:
        """Raise :class:`InvalidScript` if ``script`` cannot be run."""
        if not isinstance(script, str) or not script.strip():
            raise InvalidScript("Script text must be a non-empty string", script=script if isinstance(script, str) else None)

    def check_parameters(self, parameters: ParametersInput) -> Parameters:
        """Normalize parameters and check the engine can bind their names.

        Raises:
            ValueError: If a name is invalid, repeated or cannot be bound.
        """
        return normalize_parameters(parameters)

    # ---- Execution ----
    @abstractmethod
    def execute(
        self,
        script: str,
        parameters: Parameters,
        context: ExecutionContext,
    ) -> list[ResultRecord]:
        """Run ``script`` in ``context`` and return the records it produced."""
        raise NotImplementedError

    def invoke(
        self,
        script: str,
        parameters: ParametersInput,
        context: ExecutionContext,
    ) -> list[ResultRecord]:
        """Run a script to completion on the calling thread.

        Args:
            script: Script text to run.
            parameters: Mapping or ordered ``(name, value)`` pairs bound as
                script inputs for this run only.
            context: A context created by this engine. It is held
                exclusively while the script runs and is reusable afterwards.

        Returns:
            The records produced by the script, possibly empty.

        Raises:
            ValueError: If parameters are invalid or ``context`` belongs to
                another engine.
            InvalidScript: If the script text is empty or malformed.
            ExecutionFault: If the script fails while running.
        """
        if context.engine is not self:
            raise ValueError(f"{context!r} was not created by this {self.name} engine")
        bound = self.check_parameters(parameters)
        self.validate_script(script)

        context.checkout()
        faulted = False
        try:
            return self.execute(script, bound, context)
        except ExecutionFault:
            faulted = True
            raise
        except Exception as e:
            faulted = True
            raise ExecutionFault(f"Script raised {type(e).__name__}: {e}", script=script) from e
        except BaseException:
            # KeyboardInterrupt and friends propagate unchanged on the caller's thread
            faulted = True
            raise
        finally:
            context.checkin(faulted=faulted)
