"""UDTF (User Defined Table Functions) commands.

``udtflow udtf list``, ``info`` and ``call`` work on the handlers
discovered in the project's UDTF directory.
"""

from typing import Any, List, Optional, Tuple

import typer

from udtflow.cli.display import (
    console,
    display_generic_error,
    display_json_output,
    display_relation_plain,
    display_relation_table,
    display_udtf_info_plain,
    display_udtf_info_rich,
    display_udtfs_plain,
    display_udtfs_table,
)
from udtflow.config import RuntimeConfig, load_config
from udtflow.core.planner import Literal
from udtflow.core.registry import FunctionDefinition
from udtflow.core.runtime import TableFunctionRuntime
from udtflow.core.schema import coerce_text
from udtflow.exceptions import InvalidArgumentError, UDTFlowError
from udtflow.logging import get_logger
from udtflow.udtfs.manager import PythonUDTFManager

logger = get_logger(__name__)

INPUT_TABLE = "input_table"

udtf_app = typer.Typer(
    name="udtf",
    help="Discover and run Python table functions (UDTFs)",
)


def _discover(
    project_dir: Optional[str], profile: str
) -> Tuple[RuntimeConfig, PythonUDTFManager]:
    config = load_config(project_dir, profile)
    manager = PythonUDTFManager(project_dir)
    manager.discover_udtfs(config.udtf_dir)
    return config, manager


def _coerce_args(definition: FunctionDefinition, args: List[str]) -> Tuple[Any, ...]:
    params = definition.scalar_params
    if len(args) != len(params):
        raise InvalidArgumentError(
            f"'{definition.name}' expects {len(params)} argument(s) "
            f"({', '.join(p.name for p in params) or 'none'}), got {len(args)}"
        )
    values = []
    for param, text in zip(params, args):
        try:
            values.append(coerce_text(param.data_type, text))
        except ValueError as e:
            raise InvalidArgumentError(
                f"Cannot convert '{text}' for argument '{param.name}' "
                f"({param.data_type.value}): {e}"
            ) from e
    return tuple(values)


def _partition_key(items: List[str]) -> List[Any]:
    """Digits-only items are constants, as in ``PARTITION BY (1)``."""
    return [Literal(int(item)) if item.isdigit() else item for item in items]


@udtf_app.command("list")
def list_udtfs(
    profile: str = typer.Option("dev", "--profile", "-p", help="Profile to use"),
    project_dir: Optional[str] = typer.Option(
        None, "--project-dir", help="Project directory (default: current directory)"
    ),
    format: str = typer.Option(
        "table", "--format", help="Output format: table or json"
    ),
    plain: bool = typer.Option(
        False, "--plain", help="Plain text output without formatting"
    ),
) -> None:
    """List the UDTFs found in the project."""
    try:
        _, manager = _discover(project_dir, profile)
        udtfs = manager.list_udtfs()

        if not udtfs:
            if plain:
                print("No Python UDTFs found in the project")
            else:
                console.print("📋 [yellow]No Python UDTFs found in the project[/yellow]")
            return

        if format == "json":
            display_json_output(udtfs)
        elif plain:
            display_udtfs_plain(udtfs)
        else:
            display_udtfs_table(udtfs)

        logger.debug(f"Listed {len(udtfs)} UDTFs")

    except UDTFlowError as e:
        logger.error(f"Error listing UDTFs: {e}")
        if plain:
            print(f"Failed to list UDTFs: {e}")
        else:
            display_generic_error(e, "UDTF discovery")
        raise typer.Exit(1)


@udtf_app.command("info")
def show_udtf_info(
    udtf_name: str = typer.Argument(..., help="Name of the UDTF to show"),
    profile: str = typer.Option("dev", "--profile", "-p", help="Profile to use"),
    project_dir: Optional[str] = typer.Option(
        None, "--project-dir", help="Project directory (default: current directory)"
    ),
    plain: bool = typer.Option(
        False, "--plain", help="Plain text output without formatting"
    ),
) -> None:
    """Show the declaration and documentation of one UDTF."""
    try:
        _, manager = _discover(project_dir, profile)
    except UDTFlowError as e:
        display_generic_error(e, "UDTF discovery")
        raise typer.Exit(1)

    info = manager.get_udtf_info(udtf_name)
    if not info:
        if plain:
            print(f"UDTF '{udtf_name}' not found")
        else:
            console.print(f"❌ [red]UDTF '{udtf_name}' not found[/red]")
        raise typer.Exit(1)

    if plain:
        display_udtf_info_plain(info)
    else:
        display_udtf_info_rich(info)


@udtf_app.command("call")
def call_udtf(
    udtf_name: str = typer.Argument(..., help="Name of the UDTF to run"),
    args: Optional[List[str]] = typer.Argument(
        None, help="Scalar arguments, converted to the declared types"
    ),
    table: Optional[str] = typer.Option(
        None, "--table", "-t", help="CSV file passed as the TABLE argument"
    ),
    partition_by: Optional[List[str]] = typer.Option(
        None,
        "--partition-by",
        help="Partition column (repeatable); a number partitions by a constant",
    ),
    profile: str = typer.Option("dev", "--profile", "-p", help="Profile to use"),
    project_dir: Optional[str] = typer.Option(
        None, "--project-dir", help="Project directory (default: current directory)"
    ),
    plain: bool = typer.Option(
        False, "--plain", help="Plain text output without formatting"
    ),
) -> None:
    """Run a UDTF and print its result.

    Examples:
        udtflow udtf call generate_range 1 5
        udtflow udtf call count_rows --table data.csv --partition-by id
    """
    try:
        config, manager = _discover(project_dir, profile)
        if manager.get_udtf(udtf_name) is None:
            raise InvalidArgumentError(f"UDTF '{udtf_name}' not found in the project")

        with TableFunctionRuntime(config) as runtime:
            manager.register_with_runtime(runtime, [udtf_name])
            definition = runtime.resolve(udtf_name)
            scalar_args = _coerce_args(definition, args or [])

            if table is not None:
                runtime.load_csv(INPUT_TABLE, table)
                relation = runtime.call_table(
                    definition.name,
                    INPUT_TABLE,
                    *scalar_args,
                    partition_by=_partition_key(partition_by) if partition_by else None,
                )
            else:
                if partition_by:
                    raise InvalidArgumentError("--partition-by requires --table")
                relation = runtime.call(definition.name, *scalar_args)

    except (UDTFlowError, FileNotFoundError) as e:
        logger.debug(f"UDTF call failed: {e}")
        if plain:
            print(f"Failed to run UDTF: {e}")
        else:
            display_generic_error(e, f"call of {udtf_name}")
        raise typer.Exit(1)

    if plain:
        display_relation_plain(relation)
    else:
        display_relation_table(relation, title=definition.signature())
