"""Tests for the subprocess-backed script engine.

The current interpreter stands in for a shell so the tests do not depend on
bash being installed.
"""

import os
import sys

import pytest

from scriptpool.engines import ShellScriptEngine, available_engines, get_engine
from scriptpool.engines.python_engine import PythonScriptEngine
from scriptpool.errors import ExecutionFault


@pytest.fixture
def engine():
    return ShellScriptEngine(command=[sys.executable, "-c"])


@pytest.fixture
def context(engine):
    with engine.create_context() as ctx:
        yield ctx


class TestShellScriptEngine:
    def test_each_stdout_line_is_a_record(self, engine, context):
        results = engine.invoke("print('one')\nprint('two')", None, context)
        assert [str(r) for r in results] == ["one", "two"]

    def test_parameters_exported_as_environment(self, engine, context):
        script = "import os\nprint(os.environ['GREETING'] + ' ' + os.environ['COUNT'] + '|' + os.environ['EMPTY'] + '|')"
        results = engine.invoke(script, [("GREETING", "hi"), ("COUNT", 3), ("EMPTY", None)], context)
        assert str(results[0]) == "hi 3||"

    def test_parameters_do_not_leak_between_runs(self, engine, context):
        engine.invoke("print('x')", [("ONLY_FIRST", "1")], context)
        results = engine.invoke("import os\nprint(os.environ.get('ONLY_FIRST', 'unset'))", None, context)
        assert str(results[0]) == "unset"

    def test_runs_in_context_workdir(self, engine, context):
        results = engine.invoke("import os\nprint(os.getcwd())", None, context)
        assert os.path.realpath(str(results[0])) == os.path.realpath(context.session["workdir"])

    def test_workdir_persists_between_runs(self, engine, context):
        engine.invoke("open('marker.txt', 'w').write('kept')", None, context)
        results = engine.invoke("print(open('marker.txt').read())", None, context)
        assert str(results[0]) == "kept"

    def test_dispose_removes_workdir(self, engine):
        ctx = engine.create_context()
        workdir = ctx.session["workdir"]
        assert os.path.isdir(workdir)
        ctx.dispose()
        assert not os.path.exists(workdir)

    def test_context_invalid_without_workdir(self, engine, context):
        assert context.is_usable()
        os.rmdir(context.session["workdir"])
        assert not context.is_usable()

    def test_nonzero_exit_is_fault(self, engine, context):
        script = "import sys\nsys.stderr.write('first\\nsomething broke\\n')\nsys.exit(2)"
        with pytest.raises(ExecutionFault, match="exited with code 2: something broke") as exc_info:
            engine.invoke(script, None, context)
        assert exc_info.value.exit_code == 2
        assert "first" in exc_info.value.stderr
        assert not context.busy

    def test_nonzero_exit_without_stderr(self, engine, context):
        with pytest.raises(ExecutionFault) as exc_info:
            engine.invoke("import sys; sys.exit(4)", None, context)
        assert str(exc_info.value) == "Process exited with code 4"

    def test_timeout(self):
        engine = ShellScriptEngine(command=[sys.executable, "-c"], timeout_seconds=0.2)
        with engine.create_context() as ctx:
            with pytest.raises(ExecutionFault, match="timed out after 0.2 seconds"):
                engine.invoke("import time; time.sleep(5)", None, ctx)

    def test_missing_interpreter(self):
        engine = ShellScriptEngine(command=["scriptpool-no-such-interpreter", "-c"])
        with engine.create_context() as ctx:
            with pytest.raises(ExecutionFault, match="Interpreter not found"):
                engine.invoke("echo hi", None, ctx)

    def test_invalid_environment_name_rejected(self, engine, context):
        with pytest.raises(ValueError, match="environment variable"):
            engine.invoke("print(1)", [("not-valid", 1)], context)

    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            ShellScriptEngine(command=[])


class TestGetEngine:
    def test_default_is_python(self):
        assert isinstance(get_engine(), PythonScriptEngine)

    def test_engine_from_setting(self, monkeypatch):
        monkeypatch.setenv("SCRIPTPOOL_ENGINE", "shell")
        monkeypatch.setenv("SCRIPTPOOL_SHELL", "sh -c")
        monkeypatch.setenv("SCRIPTPOOL_SCRIPT_TIMEOUT", "2.5")

        engine = get_engine()
        assert isinstance(engine, ShellScriptEngine)
        assert engine.command == ["sh", "-c"]
        assert engine.timeout_seconds == 2.5

    def test_kwargs_override_settings(self):
        engine = get_engine("shell", command=["zsh", "-c"])
        assert engine.command == ["zsh", "-c"]

    def test_unknown_engine(self):
        with pytest.raises(ValueError, match="Unknown script engine"):
            get_engine("cobol")

    def test_available_engines(self):
        assert available_engines() == ["python", "shell"]
