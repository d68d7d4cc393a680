from .context import ExecutionContext
from .engines import PythonScriptEngine, ScriptEngine, ShellScriptEngine, get_engine
from .errors import (
    ExecutionFault,
    InvalidScript,
    PoolClosedError,
    PoolExhausted,
    ScriptPoolError,
    StateBagMissing,
    SubmissionAbandoned,
)
from .handle import ExecutionHandle, wait_all
from .invoke import require_state, run_asynchronously, run_synchronously
from .pool import ExhaustedPolicy, PoolConfig, PoolState, ScriptPool, log_fault
from .types import ExecutionStatus, ResultRecord, Submission

__all__ = [
    "ExecutionContext",
    "ExecutionFault",
    "ExecutionHandle",
    "ExecutionStatus",
    "ExhaustedPolicy",
    "InvalidScript",
    "PoolClosedError",
    "PoolConfig",
    "PoolExhausted",
    "PoolState",
    "PythonScriptEngine",
    "ResultRecord",
    "ScriptEngine",
    "ScriptPool",
    "ScriptPoolError",
    "ShellScriptEngine",
    "StateBagMissing",
    "Submission",
    "SubmissionAbandoned",
    "get_engine",
    "log_fault",
    "require_state",
    "run_asynchronously",
    "run_synchronously",
    "wait_all",
]
