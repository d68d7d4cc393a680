"""
Runspace demo
=============

Runs a directory listing synchronously in a caller-owned context, then runs
``sleep_script.py`` twenty times in parallel on a pool, passing each run its
number as a parameter and its invocation time as a state value.

    python examples/runspace_demo.py
"""

from datetime import datetime
from pathlib import Path

from scriptpool import (
    PythonScriptEngine,
    ScriptPool,
    require_state,
    run_asynchronously,
    run_synchronously,
    wait_all,
)

STATE_VALUE_NAME_INVOCATION_TIME = "invocationTime"
PARAMETER_NAME_TEXT = "text"
NUM_SCRIPTS_TO_RUN = 20

LIST_DIRECTORY = """
from datetime import datetime
from pathlib import Path

for entry in sorted(Path(root).iterdir()):
    emit({
        "Name": entry.name,
        "CreationTime": datetime.fromtimestamp(entry.stat().st_ctime),
    })
"""


def process_results(results, state_values):
    require_state(state_values, STATE_VALUE_NAME_INVOCATION_TIME)
    invocation_time = state_values[STATE_VALUE_NAME_INVOCATION_TIME]
    for result in results:
        print(f"Script Completed: {result} | Invocation Time: {invocation_time:%H:%M:%S.%f}")


def main() -> None:
    engine = PythonScriptEngine()

    print("Starting synchronous script run.")
    with engine.create_context() as context:
        for result in run_synchronously(LIST_DIRECTORY, context, {"root": str(Path.cwd())}):
            print(f"Name: {result['Name']} | CreationTime: {result['CreationTime']}")
    print("Synchronous script run complete.\n")

    print("Starting asynchronous script run.")
    script = (Path(__file__).parent / "sleep_script.py").read_text()
    with ScriptPool(min_contexts=1, max_contexts=NUM_SCRIPTS_TO_RUN, engine=engine) as pool:
        handles = [
            run_asynchronously(
                script,
                pool,
                on_complete=process_results,
                state_bag={STATE_VALUE_NAME_INVOCATION_TIME: datetime.now()},
                parameters=[(PARAMETER_NAME_TEXT, i)],
            )
            for i in range(1, NUM_SCRIPTS_TO_RUN + 1)
        ]
        wait_all(handles)
    print("Asynchronous script runs complete.")


if __name__ == "__main__":
    main()
