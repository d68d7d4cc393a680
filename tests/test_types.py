from types import SimpleNamespace

import pytest

from scriptpool.context import ExecutionContext
from scriptpool.engines.python_engine import PythonScriptEngine
from scriptpool.errors import PoolClosedError
from scriptpool.types import ResultRecord, normalize_parameters


class TestResultRecord:
    def test_mapping_properties(self):
        record = ResultRecord({"Name": "report.txt", "Size": 12})
        assert record["Name"] == "report.txt"
        assert record.get("Size") == 12
        assert record.get("Missing", "n/a") == "n/a"

    def test_object_properties_skip_private_attributes(self):
        record = ResultRecord(SimpleNamespace(name="a", _hidden=1))
        assert record.properties == {"name": "a"}

    def test_scalar_has_no_properties(self):
        record = ResultRecord("plain text")
        assert record.properties == {}
        assert str(record) == "plain text"
        with pytest.raises(KeyError):
            record["anything"]

    def test_records_are_immutable(self):
        record = ResultRecord(1)
        with pytest.raises(AttributeError):
            record.value = 2  # type: ignore[misc]


class TestNormalizeParameters:
    def test_none_is_empty(self):
        assert normalize_parameters(None) == ()

    def test_order_preserved(self):
        assert normalize_parameters([("b", 2), ("a", 1)]) == (("b", 2), ("a", 1))

    def test_mapping(self):
        assert normalize_parameters({"x": 1}) == (("x", 1),)

    def test_result_is_a_copy(self):
        source = [("x", 1)]
        normalized = normalize_parameters(source)
        source.append(("y", 2))
        assert normalized == (("x", 1),)

    @pytest.mark.parametrize(
        "parameters, message",
        [
            ([("x", 1), ("x", 2)], "Duplicate parameter name: x"),
            ([("", 1)], "non-empty strings"),
            ([(3, 1)], "non-empty strings"),
            (["abc"], "pairs"),
        ],
    )
    def test_invalid_parameters(self, parameters, message):
        with pytest.raises(ValueError, match=message):
            normalize_parameters(parameters)


class TestExecutionContext:
    """Tests for context ownership and disposal."""

    def test_generated_id(self):
        ctx = ExecutionContext(PythonScriptEngine())
        assert ctx.id.startswith("ctx-")
        assert len(ctx.id) == len("ctx-") + 8

    def test_checkout_is_exclusive(self):
        ctx = ExecutionContext(PythonScriptEngine())
        ctx.checkout()
        assert ctx.busy
        assert not ctx.is_usable()
        with pytest.raises(RuntimeError):
            ctx.checkout()

        ctx.checkin()
        assert not ctx.busy
        assert ctx.runs == 1

    def test_checkin_counts_faults(self):
        ctx = ExecutionContext(PythonScriptEngine())
        ctx.checkout()
        ctx.checkin(faulted=True)
        assert ctx.faults == 1

    def test_dispose_is_idempotent(self):
        calls = []

        class RecordingEngine(PythonScriptEngine):
            def dispose_context(self, context):
                calls.append(context.id)

        ctx = RecordingEngine().create_context("ctx-1")
        ctx.dispose()
        ctx.dispose()
        assert calls == ["ctx-1"]
        assert ctx.disposed
        assert not ctx.is_usable()

    def test_checkout_after_dispose(self):
        ctx = ExecutionContext(PythonScriptEngine())
        ctx.dispose()
        with pytest.raises(PoolClosedError):
            ctx.checkout()

    def test_context_manager_disposes(self):
        with PythonScriptEngine().create_context() as ctx:
            assert not ctx.disposed
        assert ctx.disposed
