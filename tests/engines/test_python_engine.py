"""Tests for the in-process Python script engine."""

import pytest

from scriptpool.engines.python_engine import PythonScriptEngine
from scriptpool.errors import ExecutionFault, InvalidScript, PoolClosedError


@pytest.fixture
def engine():
    return PythonScriptEngine()


@pytest.fixture
def context(engine):
    with engine.create_context() as ctx:
        yield ctx


class TestPythonScriptEngineExecution:
    """Tests for running scripts and collecting their records."""

    def test_emit_preserves_order(self, engine, context):
        results = engine.invoke("emit(1)\nemit(2, 3)\nemit('four')", None, context)
        assert [r.value for r in results] == [1, 2, 3, "four"]

    def test_script_without_output_returns_empty_list(self, engine, context):
        assert engine.invoke("x = 1 + 1", None, context) == []

    def test_parameters_bound_as_globals(self, engine, context):
        results = engine.invoke("emit(f'{greeting}, {name}')", [("greeting", "Hello"), ("name", "pool")], context)
        assert str(results[0]) == "Hello, pool"

    def test_mapping_parameters(self, engine, context):
        results = engine.invoke("emit(params)", {"a": 1, "b": 2}, context)
        assert results[0].value == {"a": 1, "b": 2}

    def test_parameters_do_not_leak_between_runs(self, engine, context):
        """Each run gets a fresh namespace even on the same context."""
        engine.invoke("emit(text)\nleftover = 'x'", [("text", "first")], context)

        results = engine.invoke(
            "emit('text' in globals(), 'leftover' in globals())",
            None,
            context,
        )
        assert [r.value for r in results] == [False, False]

    def test_session_persists_within_context(self, engine, context):
        engine.invoke("session['count'] = session.get('count', 0) + 1", None, context)
        results = engine.invoke("session['count'] += 1\nemit(session['count'])", None, context)
        assert results[0].value == 2

    def test_session_is_private_to_context(self, engine, context):
        engine.invoke("session['secret'] = 42", None, context)
        with engine.create_context() as other:
            results = engine.invoke("emit(session.get('secret'))", None, other)
        assert results[0].value is None

    def test_context_id_available_to_script(self, engine):
        with engine.create_context("ctx-test") as ctx:
            results = engine.invoke("emit(context_id)", None, ctx)
        assert results[0].value == "ctx-test"

    def test_script_can_import_modules(self, engine, context):
        results = engine.invoke("import math\nemit(math.floor(2.7))", None, context)
        assert results[0].value == 2

    def test_system_exit_zero_is_success(self, engine, context):
        results = engine.invoke("emit('before')\nraise SystemExit(0)\nemit('after')", None, context)
        assert [r.value for r in results] == ["before"]


class TestPythonScriptEngineFaults:
    """Tests for invalid scripts and runtime failures."""

    @pytest.mark.parametrize("script", ["", "   \n\t"])
    def test_empty_script_is_invalid(self, engine, context, script):
        with pytest.raises(InvalidScript, match="non-empty"):
            engine.invoke(script, None, context)

    def test_non_string_script_is_invalid(self, engine, context):
        with pytest.raises(InvalidScript):
            engine.invoke(None, None, context)  # type: ignore[arg-type]

    def test_syntax_error_is_invalid_script(self, engine, context):
        with pytest.raises(InvalidScript, match="line 2") as exc_info:
            engine.invoke("x = 1\nthis is not python", None, context)
        assert isinstance(exc_info.value.__cause__, SyntaxError)
        assert context.runs == 0

    def test_runtime_error_wrapped_as_fault(self, engine, context):
        with pytest.raises(ExecutionFault, match="ZeroDivisionError") as exc_info:
            engine.invoke("1 / 0", None, context)
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)
        assert exc_info.value.script == "1 / 0"

    def test_nonzero_exit_is_fault(self, engine, context):
        with pytest.raises(ExecutionFault, match="status 3") as exc_info:
            engine.invoke("raise SystemExit(3)", None, context)
        assert exc_info.value.exit_code == 3

    def test_context_reusable_after_fault(self, engine, context):
        with pytest.raises(ExecutionFault):
            engine.invoke("raise RuntimeError('boom')", None, context)

        assert not context.busy
        assert context.faults == 1
        results = engine.invoke("emit('ok')", None, context)
        assert results[0].value == "ok"
        assert context.runs == 2

    def test_interrupt_propagates_and_releases_context(self, engine, context):
        with pytest.raises(KeyboardInterrupt):
            engine.invoke("raise KeyboardInterrupt", None, context)

        assert not context.busy
        assert context.faults == 1
        assert engine.invoke("emit('ok')", None, context)[0].value == "ok"

    def test_invalid_script_subclasses_fault(self):
        assert issubclass(InvalidScript, ExecutionFault)


class TestPythonScriptEngineParameters:
    """Tests for parameter validation."""

    @pytest.mark.parametrize("name", ["emit", "params", "session", "context_id"])
    def test_reserved_names_rejected(self, engine, context, name):
        with pytest.raises(ValueError, match="reserved"):
            engine.invoke("pass", [(name, 1)], context)

    @pytest.mark.parametrize("name", ["1abc", "has space", "class"])
    def test_non_identifiers_rejected(self, engine, context, name):
        with pytest.raises(ValueError, match="identifier"):
            engine.invoke("pass", [(name, 1)], context)

    def test_duplicate_names_rejected(self, engine, context):
        with pytest.raises(ValueError, match="Duplicate parameter name: x"):
            engine.invoke("pass", [("x", 1), ("x", 2)], context)

    def test_parameter_check_happens_before_checkout(self, engine, context):
        with pytest.raises(ValueError):
            engine.invoke("pass", [("emit", 1)], context)
        assert context.runs == 0


class TestPythonScriptEngineContexts:
    """Tests for context ownership rules."""

    def test_foreign_context_rejected(self, engine):
        other = PythonScriptEngine()
        with other.create_context() as ctx:
            with pytest.raises(ValueError, match="not created by this"):
                engine.invoke("pass", None, ctx)

    def test_disposed_context_rejected(self, engine):
        ctx = engine.create_context()
        ctx.dispose()
        with pytest.raises(PoolClosedError):
            engine.invoke("pass", None, ctx)

    def test_busy_context_rejected(self, engine, context):
        context.checkout()
        try:
            with pytest.raises(RuntimeError, match="already executing"):
                engine.invoke("pass", None, context)
        finally:
            context.checkin()
