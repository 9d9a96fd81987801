"""udtflow command line interface."""

import typer

from udtflow.cli.commands.udtf import udtf_app
from udtflow.cli.display import console
from udtflow.logging import configure_logging, get_logger
from udtflow.utils.env import setup_environment

logger = get_logger(__name__)

app = typer.Typer(
    name="udtflow",
    help="udtflow CLI - run Python table functions locally",
    add_completion=False,
)

app.add_typer(udtf_app, name="udtf")


@app.callback(invoke_without_command=True)
def main(
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose output"
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only show warnings and errors"
    ),
) -> None:
    """udtflow CLI - run Python table functions locally.

    Examples:
        udtflow udtf list
        udtflow udtf call generate_range 1 5
    """
    if version:
        from udtflow import __version__

        console.print(f"udtflow CLI v{__version__}")
        raise typer.Exit()

    configure_logging(verbose=verbose, quiet=quiet)
    if setup_environment():
        logger.debug("Loaded project .env file")


def cli() -> None:
    """Entry point for the console script."""
    app()


if __name__ == "__main__":
    cli()
