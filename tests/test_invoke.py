import pytest

from scriptpool.engines.python_engine import PythonScriptEngine
from scriptpool.errors import ExecutionFault, InvalidScript, StateBagMissing
from scriptpool.invoke import require_state, run_asynchronously, run_synchronously
from scriptpool.pool import ScriptPool
from scriptpool.types import ExecutionStatus


class TestRunSynchronously:
    def test_returns_records_in_order(self):
        with PythonScriptEngine().create_context() as ctx:
            results = run_synchronously("for i in range(3):\n    emit(i)", ctx)
        assert [r.value for r in results] == [0, 1, 2]

    def test_directory_listing_records(self, tmp_path):
        (tmp_path / "a.txt").write_text("a")
        (tmp_path / "b.txt").write_text("b")
        script = """
from pathlib import Path
from datetime import datetime
for entry in sorted(Path(folder).iterdir()):
    emit({"Name": entry.name, "CreationTime": datetime.fromtimestamp(entry.stat().st_ctime)})
"""
        with PythonScriptEngine().create_context() as ctx:
            results = run_synchronously(script, ctx, [("folder", str(tmp_path))])

        assert [r["Name"] for r in results] == ["a.txt", "b.txt"]
        assert all(r.get("CreationTime") is not None for r in results)

    def test_parameters_scoped_to_one_run(self):
        with PythonScriptEngine().create_context() as ctx:
            run_synchronously("emit(x)", ctx, {"x": 1})
            with pytest.raises(ExecutionFault, match="NameError"):
                run_synchronously("emit(x)", ctx)

    def test_empty_script(self):
        with PythonScriptEngine().create_context() as ctx:
            with pytest.raises(InvalidScript):
                run_synchronously("", ctx)


class TestRunAsynchronously:
    def test_delegates_to_pool(self):
        received = []
        bag = {"k": "v"}
        with ScriptPool() as pool:
            handle = run_asynchronously(
                "emit(value * 2)",
                pool,
                on_complete=lambda results, state: received.append((results[0].value, state)),
                state_bag=bag,
                parameters={"value": 21},
            )
            assert handle.wait(5)

        assert handle.status is ExecutionStatus.COMPLETED
        assert received == [(42, bag)]
        assert received[0][1] is bag


class TestRequireState:
    def test_present(self):
        require_state({"invocationTime": 1, "other": 2}, "invocationTime")

    def test_any_value_without_names(self):
        require_state({"x": 1})

    @pytest.mark.parametrize("bag", [None, {}])
    def test_empty_bag(self, bag):
        with pytest.raises(StateBagMissing, match="invocationTime") as exc_info:
            require_state(bag, "invocationTime")
        assert exc_info.value.missing == ["invocationTime"]

    def test_empty_bag_without_names(self):
        with pytest.raises(StateBagMissing) as exc_info:
            require_state({})
        assert exc_info.value.missing == ["<any>"]

    def test_lists_missing_names(self):
        with pytest.raises(StateBagMissing, match="Missing state values: b, c"):
            require_state({"a": 1}, "a", "b", "c")
