"""Command-line interface for regionbox."""

import logging
import os
import sys
import threading
import time
import urllib.error
import urllib.request
import webbrowser
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from regionbox import __version__
from regionbox.services.dataset_service import DatasetService
from regionbox.services.export_service import ExportService
from regionbox.services.workspace import Workspace

app = typer.Typer(
    name="regionbox",
    help="Region bounding box annotation tool for conversational image datasets.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

DatasetDirArgument = Annotated[
    Path,
    typer.Argument(help="Dataset folder containing dataset.json and images/."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]regionbox[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Regionbox - Region bounding box annotation tool."""
    pass


def _open_workspace(dataset_dir: Path) -> Workspace:
    """Open a dataset folder or exit with a readable error."""
    try:
        return Workspace.open(dataset_dir)
    except (FileNotFoundError, ValueError) as err:
        console.print(f"[red]Error:[/red] {err}", style="bold red")
        raise typer.Exit(1) from None


def _wait_for_server_ready(url: str, timeout_seconds: float = 12.0) -> bool:
    """Poll health endpoint until server responds or timeout is reached."""
    health_url = f"{url}/api/health"
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        try:
            with urllib.request.urlopen(health_url, timeout=0.5):
                return True
        except (urllib.error.URLError, TimeoutError, OSError):
            time.sleep(0.1)
    return False


def _open_browser_after_ready(url: str) -> None:
    """Open browser once server is healthy, with fallback after timeout."""
    _wait_for_server_ready(url)
    webbrowser.open(f"{url}/docs")


@app.command()
def start(
    dataset_dir: Annotated[
        Path | None,
        typer.Option(
            "--dataset-dir",
            "-d",
            help="Dataset folder to open (defaults to the current directory).",
        ),
    ] = None,
    host: Annotated[
        str,
        typer.Option("--host", "-h", help="Host to bind the server to."),
    ] = "127.0.0.1",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port to bind the server to."),
    ] = 8000,
    no_browser: Annotated[
        bool,
        typer.Option("--no-browser", help="Don't open browser automatically."),
    ] = False,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload for development."),
    ] = False,
) -> None:
    """Start the regionbox annotation server.

    Opens the dataset folder, serves the annotation API and saves
    annotations.json automatically while you work.
    """
    if dataset_dir is not None:
        valid, error = DatasetService(dataset_dir).validate()
        if not valid:
            console.print(f"[red]Error:[/red] {error}", style="bold red")
            raise typer.Exit(1)
        os.environ["REGIONBOX_DATASET_DIR"] = str(dataset_dir.resolve())

    url = f"http://{host}:{port}"
    console.print(
        Panel(
            f"[bold green]Starting regionbox server[/bold green]\n\n"
            f"  URL: [link={url}]{url}[/link]\n"
            f"  Dataset: {os.environ.get('REGIONBOX_DATASET_DIR', Path.cwd())}\n"
            f"  Reload: {'enabled' if reload else 'disabled'}",
            title="Regionbox",
            border_style="blue",
        )
    )

    if not no_browser:
        threading.Thread(
            target=_open_browser_after_ready,
            args=(url,),
            daemon=True,
        ).start()

    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "regionbox.main:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def validate(dataset_dir: DatasetDirArgument) -> None:
    """Check that a folder is a readable dataset."""
    workspace = _open_workspace(dataset_dir)
    missing = [
        item.id
        for item in workspace.items
        if workspace.dataset_service.get_image_path(item) is None
    ]
    console.print(
        f"[green]✓[/green] {len(workspace.items)} items in "
        f"[bold]{workspace.dataset_service.folder_name}[/bold]"
    )
    if missing:
        console.print(f"[yellow]Missing images for {len(missing)} items:[/yellow]")
        for item_id in missing:
            console.print(f"  {item_id}")
        raise typer.Exit(1)


@app.command()
def stats(dataset_dir: DatasetDirArgument) -> None:
    """Show annotation progress for a dataset."""
    workspace = _open_workspace(dataset_dir)
    export_stats = ExportService(workspace).get_stats()

    table = Table(title=f"{workspace.dataset_service.folder_name} progress")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total images", str(export_stats.total_images))
    table.add_row("Completed", str(export_stats.annotated_images))
    table.add_row("Skipped", str(export_stats.skipped_images))
    table.add_row("Total regions", str(export_stats.total_regions))
    table.add_row("Annotated regions", str(export_stats.annotated_regions))
    table.add_row("Completion", f"{export_stats.completion_percentage}%")
    console.print(table)


@app.command()
def export(
    dataset_dir: DatasetDirArgument,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output file (defaults to <folder>_annotated.json in the dataset).",
        ),
    ] = None,
    include_unannotated: Annotated[
        bool,
        typer.Option(
            "--include-unannotated",
            help="Also export items that have no annotation.",
        ),
    ] = False,
) -> None:
    """Export the dataset with boxes written into the gpt text."""
    workspace = _open_workspace(dataset_dir)
    output_path = ExportService(workspace).export_json(output, include_unannotated)
    console.print(f"[green]✓[/green] Exported to {output_path}")


@app.command()
def info() -> None:
    """Show information about the current installation."""
    console.print(
        Panel(
            f"[bold blue]regionbox[/bold blue] v{__version__}\n\n"
            f"[bold]Python:[/bold] {sys.version}\n"
            f"[bold]Dataset dir:[/bold] "
            f"{os.environ.get('REGIONBOX_DATASET_DIR', 'not set (current directory)')}",
            title="Installation Info",
            border_style="blue",
        )
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
