"""
Sentinel CLI - Main entry point
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from sentinel.coordinator import Coordinator, TaskRunReport, TaskStatus
from sentinel.core.config.settings import settings
from sentinel.core.config.validation import ConfigGenerator
from sentinel.core.exceptions.custom_exceptions import ConfigurationError
from sentinel.core.logging.logger import get_logger
from sentinel.events import TriggerEvent
from sentinel.tasks.graph import TaskGraph
from sentinel.tasks.store import FileTaskConfigStore, load_task_file

# Initialize CLI app
app = typer.Typer(
    name="sentinel",
    help="Data-tasks coordinator for managed, rate-limited integration sends",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

# Initialize console and logger
console = Console()
logger = get_logger(__name__)

STATUS_STYLES = {
    TaskStatus.SUCCEEDED: "green",
    TaskStatus.FAILED_IGNORED: "yellow",
    TaskStatus.FAILED: "red",
}

TEMPLATES = {
    "http": ConfigGenerator.generate_http_config,
    "knot": ConfigGenerator.generate_knot_config,
}


def parse_params(values: List[str]) -> Dict[str, Any]:
    """Parse KEY=VALUE pairs into a parameter mapping"""
    parameters: Dict[str, Any] = {}
    for value in values:
        key, sep, raw = value.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected KEY=VALUE, got '{value}'")
        parameters[key.strip()] = raw
    return parameters


def render_report(report: TaskRunReport) -> Table:
    table = Table(title="Task Run Report")
    table.add_column("Task", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Status")
    table.add_column("Lines", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Errors", style="dim")

    for item in report.walk():
        style = STATUS_STYLES[item.status]
        table.add_row(
            item.task_id,
            item.task_type.value,
            f"[{style}]{item.status.value}[/{style}]",
            str(item.result.number_of_lines),
            str(len(item.result.failed_lines)),
            escape("; ".join(item.result.errors[:3])),
        )
        for invocation in item.dispatched:
            table.add_row(
                invocation.task_id, "-", "[blue]dispatched[/blue]", "", "", ""
            )
    return table


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """
    Sentinel CLI - Data-tasks coordinator

    Run 'sentinel --help' for available commands.
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.info("Verbose logging enabled")


@app.command()
def run(
    task_id: str = typer.Argument(..., help="Task to trigger"),
    config_dir: Path = typer.Option(
        Path(settings.TASK_CONFIG_DIR),
        "--config-dir",
        "-d",
        help="Directory holding <namespace>/<task_id>.yaml documents",
    ),
    data: Optional[Path] = typer.Option(
        None, "--data", help="File with newline-delimited records"
    ),
    namespace: str = typer.Option(
        settings.DEFAULT_NAMESPACE, "--namespace", "-n", help="Task namespace"
    ),
    param: List[str] = typer.Option(
        [], "--param", "-p", help="Trigger parameter as KEY=VALUE (repeatable)"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the report as JSON to this file"
    ),
) -> None:
    """Run one trigger against a directory of task configurations"""
    if data is not None and not data.exists():
        console.print(f"[red]Error: Data file {data} does not exist[/red]")
        raise typer.Exit(1)

    event = TriggerEvent(
        task_id=task_id,
        namespace=namespace,
        data=data.read_text(encoding="utf-8") if data is not None else "",
        parameters=parse_params(param),
    )
    coordinator = Coordinator(FileTaskConfigStore(str(config_dir)))

    try:
        report = asyncio.run(coordinator.handle(event))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(e.message)}")
        raise typer.Exit(2)

    console.print(render_report(report))

    if output is not None:
        output.write_text(json.dumps(report.to_dict(), indent=2))
        console.print(f"Report written to {output}")

    if not report.ok:
        console.print(
            f"[red]Run failed, {len(report.failed_lines())} records to replay[/red]"
        )
        raise typer.Exit(1)
    console.print("[green]Run succeeded[/green]")


@app.command()
def validate(
    config_path: Path = typer.Argument(..., help="Path to a task configuration"),
) -> None:
    """Validate a task configuration document"""
    try:
        config = load_task_file(str(config_path))
    except ConfigurationError as e:
        console.print(f"[red]Invalid configuration:[/red] {escape(e.message)}")
        raise typer.Exit(1)

    console.print(
        f"[green]Configuration is valid:[/green] {config.id} ({config.task_type.value})"
    )
    if config.next_task_ids:
        console.print(f"   next: {', '.join(config.next_task_ids)}")


@app.command()
def graph(
    task_id: str = typer.Argument(..., help="Root task"),
    config_dir: Path = typer.Option(
        Path(settings.TASK_CONFIG_DIR), "--config-dir", "-d", help="Config directory"
    ),
    namespace: str = typer.Option(
        settings.DEFAULT_NAMESPACE, "--namespace", "-n", help="Task namespace"
    ),
) -> None:
    """Show the task graph reachable from a task"""
    store = FileTaskConfigStore(str(config_dir))
    try:
        task_graph = asyncio.run(TaskGraph.build(store, namespace, task_id))
    except ConfigurationError as e:
        console.print(f"[red]Invalid task graph:[/red] {escape(e.message)}")
        raise typer.Exit(1)

    tree = Tree(f"[bold cyan]{task_id}[/bold cyan]")

    def add_branch(parent: Tree, source: str) -> None:
        for edge in task_graph.edges_from(source):
            label = f"{edge.target} [dim]({edge.kind.value})[/dim]"
            if edge.appended_parameters:
                label += f" {edge.appended_parameters}"
            add_branch(parent.add(label), edge.target)

    add_branch(tree, task_id)
    console.print(tree)
    console.print(f"Order: {' -> '.join(task_graph.topological_order())}")


@app.command()
def template(
    kind: str = typer.Argument(..., help=f"One of: {', '.join(TEMPLATES)}"),
) -> None:
    """Print a starter task configuration"""
    generator = TEMPLATES.get(kind)
    if generator is None:
        console.print(f"[red]Unknown template '{kind}'[/red]")
        raise typer.Exit(1)
    console.print(yaml.safe_dump(generator(), sort_keys=False), markup=False)


@app.command()
def version() -> None:
    """Show Sentinel version information"""
    table = Table(title="Sentinel Version Information")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")
    table.add_column("Environment", style="yellow")

    table.add_row("Sentinel", settings.APP_VERSION, settings.ENVIRONMENT)
    table.add_row("Python", "3.9+", "Required")
    table.add_row("Namespace", settings.DEFAULT_NAMESPACE, "Default")

    console.print(table)


if __name__ == "__main__":
    app()
