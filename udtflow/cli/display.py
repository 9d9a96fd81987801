"""Rich display functions for the udtflow CLI."""

import json
from typing import Any, Dict, List

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from udtflow.core.relation import Relation

console = Console()


def display_generic_error(error: Exception, context: str = "") -> None:
    """Display generic error with context.

    Args:
        error: Exception that occurred
        context: Optional context about where the error occurred
    """
    context_text = f" during {context}" if context else ""
    console.print(f"❌ [bold red]Error{context_text}[/bold red]")
    console.print(f"🔍 [dim]{escape(str(error))}[/dim]", highlight=False)


def display_json_output(data: Any) -> None:
    """Display JSON output with proper formatting.

    Args:
        data: Data to display as JSON
    """
    try:
        json_str = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        console.print(json_str, markup=False, highlight=False, soft_wrap=True)
    except (TypeError, ValueError) as e:
        console.print(f"❌ [red]Error formatting JSON output: {e}[/red]")


def display_udtfs_plain(udtfs: List[Dict[str, Any]]) -> None:
    for info in udtfs:
        summary = info.get("docstring", "").split("\n", 1)[0] or "No description"
        print(f"{info['name']} ({info['type']}): {summary}")


def display_udtfs_table(udtfs: List[Dict[str, Any]]) -> None:
    console.print(f"📋 [bold blue]Available UDTFs ({len(udtfs)})[/bold blue]")

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="white")
    table.add_column("Returns", style="white")
    table.add_column("Description", style="dim")

    for info in udtfs:
        description = info.get("docstring", "").split("\n", 1)[0] or "No description"
        # Truncate long descriptions
        if len(description) > 60:
            description = description[:57] + "..."
        table.add_row(info["name"], info["type"], info["returns"], description)

    console.print(table)


def display_udtf_info_plain(info: Dict[str, Any]) -> None:
    print(f"UDTF: {info['name']}")
    print(f"Type: {info['type']}")
    print(f"Stateful: {'yes' if info.get('stateful') else 'no'}")
    print(f"Module: {info.get('module', 'unknown')}")
    print(f"Signature: {info['signature']}")
    if info.get("docstring"):
        print(f"Description: {info['docstring']}")


def display_udtf_info_rich(info: Dict[str, Any]) -> None:
    console.print(f"📋 [bold blue]UDTF Information: {info['name']}[/bold blue]")
    console.print(f"Type: [cyan]{info['type']}[/cyan]")
    console.print(f"Stateful: [cyan]{'yes' if info.get('stateful') else 'no'}[/cyan]")
    console.print(f"Module: [dim]{info.get('module', 'unknown')}[/dim]")
    console.print(f"Signature: {info['signature']}", markup=False)

    if info.get("docstring"):
        console.print("\n[bold]Description:[/bold]")
        console.print(info["docstring"], style="dim", markup=False)


def display_relation_plain(relation: Relation) -> None:
    """Print a relation as tab-separated lines with a header."""
    print("\t".join(relation.columns))
    for row in relation.rows:
        print("\t".join("NULL" if value is None else str(value) for value in row))


def display_relation_table(relation: Relation, title: str = "") -> None:
    table = Table(title=title or None, show_header=True, header_style="bold blue")
    for column in relation.columns:
        table.add_column(column, style="cyan")
    for row in relation.rows:
        table.add_row(
            *("NULL" if value is None else escape(str(value)) for value in row)
        )
    console.print(table)
    console.print(f"[dim]{len(relation)} row(s)[/dim]")
