import os
import threading
from datetime import datetime
from importlib import metadata
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from scriptpool.config.configuration import get_settings_registry
from scriptpool.config.environment import Environment
from scriptpool.config.logging_config import configure_logging, get_logger
from scriptpool.engines import available_engines, get_engine
from scriptpool.errors import ExecutionFault, PoolExhausted
from scriptpool.handle import wait_all
from scriptpool.invoke import run_synchronously
from scriptpool.pool import PoolConfig, ScriptPool
from scriptpool.types import ResultRecord

# State value holding the time a script was submitted
STATE_VALUE_NAME_INVOCATION_TIME = "invocationTime"

console = Console()
log = get_logger(__name__)


def _get_version() -> str:
    try:
        return metadata.version("scriptpool")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def _parse_params(values: tuple[str, ...]) -> list[tuple[str, str]]:
    params: list[tuple[str, str]] = []
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}", param_hint="--param")
        params.append((name, value))
    return params


def _read_script(script_file: Any) -> str:
    script = script_file.read()
    if not script.strip():
        raise click.ClickException(f"Couldn't read the contents of the script from {script_file.name}.")
    return script


def _format_record(record: ResultRecord) -> str:
    properties = record.properties
    if properties:
        return " | ".join(f"{k}: {v}" for k, v in properties.items())
    return str(record)


@click.group()
@click.version_option(_get_version(), prog_name="scriptpool")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging (DEBUG level).")
def cli(verbose: bool = False):
    """scriptpool - run scripts in isolated contexts, one at a time or in parallel."""
    if verbose:
        os.environ["LOG_LEVEL"] = "DEBUG"
        configure_logging("DEBUG")


@cli.command()
@click.argument("script_file", type=click.File("r"))
@click.option("--param", "-p", "params", multiple=True, help="Script parameter as NAME=VALUE. Repeatable.")
@click.option("--engine", type=click.Choice(available_engines()), default=None, help="Script engine to use.")
def run(script_file, params: tuple[str, ...], engine: str | None = None):
    """Run SCRIPT_FILE synchronously in a fresh context and print its results."""
    script = _read_script(script_file)
    parameters = _parse_params(params)
    script_engine = get_engine(engine)
    log.debug("running %s with the %s engine", script_file.name, script_engine.name)

    console.print("Starting synchronous script run.")
    with script_engine.create_context() as context:
        try:
            results = run_synchronously(script, context, parameters)
        except ExecutionFault as e:
            raise click.ClickException(str(e)) from e
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--param") from e

    for record in results:
        console.print(_format_record(record), markup=False, highlight=False, soft_wrap=True)
    console.print("Synchronous script run complete.")


@cli.command()
@click.argument("script_file", type=click.File("r"))
@click.option("--count", "-n", default=20, show_default=True, type=click.IntRange(min=1), help="Number of runs to submit.")
@click.option("--min-contexts", default=None, type=click.IntRange(min=0), help="Contexts created up front.")
@click.option("--max-contexts", default=None, type=click.IntRange(min=1), help="Maximum runs in parallel.")
@click.option("--param-name", default="text", show_default=True, help="Parameter that receives the run number.")
@click.option("--engine", type=click.Choice(available_engines()), default=None, help="Script engine to use.")
def parallel(
    script_file,
    count: int,
    min_contexts: int | None,
    max_contexts: int | None,
    param_name: str,
    engine: str | None = None,
):
    """Run SCRIPT_FILE COUNT times in parallel and report each completion."""
    script = _read_script(script_file)
    if max_contexts is None:
        max_contexts = count
    if min_contexts is None:
        min_contexts = min(Environment.get_min_contexts(), max_contexts)
    try:
        config = PoolConfig.from_environment(min_contexts=min_contexts, max_contexts=max_contexts)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    print_lock = threading.Lock()
    failures: list[BaseException] = []

    def process_results(results: list[ResultRecord], state_values: dict[str, Any]) -> None:
        with print_lock:
            invocation_time = state_values.get(STATE_VALUE_NAME_INVOCATION_TIME) if state_values else None
            if not isinstance(invocation_time, datetime):
                console.print("[red]Error:[/red] No state values were passed through the script.")
                return
            for record in results:
                console.print(
                    f"Script Completed: {record} | Invocation Time: "
                    f"{invocation_time:%H:%M:%S} {invocation_time.microsecond // 1000}ms",
                    markup=False,
                    soft_wrap=True,
                    highlight=False,
                )

    def process_error(fault: BaseException, state_values: dict[str, Any]) -> None:
        with print_lock:
            failures.append(fault)
            console.print(f"[red]Script Failed:[/red] {fault}")

    console.print("Starting asynchronous script run.")
    with ScriptPool(engine=get_engine(engine), config=config) as pool:
        handles = []
        for i in range(1, count + 1):
            state_values = {STATE_VALUE_NAME_INVOCATION_TIME: datetime.now()}
            try:
                handles.append(
                    pool.submit(
                        script,
                        on_complete=process_results,
                        on_error=process_error,
                        state_bag=state_values,
                        parameters=[(param_name, i)],
                    )
                )
            except (ValueError, PoolExhausted) as e:
                raise click.ClickException(str(e)) from e
        wait_all(handles)

    console.print("Asynchronous script runs complete.")
    if failures:
        raise click.ClickException(f"{len(failures)} of {count} script runs failed.")


@cli.command("settings")
def show_settings():
    """Show registered settings and their current values."""
    table = Table(title="scriptpool settings")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Group")
    table.add_column("Value", style="green", no_wrap=True)
    table.add_column("Description")

    for setting in get_settings_registry():
        value = Environment.get(setting.env_var, None)
        table.add_row(
            setting.env_var,
            setting.group,
            "" if value is None else str(value),
            setting.description,
        )
    console.print(table)


if __name__ == "__main__":
    cli()
