"""CLI interface for tubestream."""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import settings
from .exceptions import TubeStreamError
from .ingestion.extractor import YtDlpExtractor
from .service import MetadataService
from .storage.cache import MetadataCache

app = typer.Typer(help="TubeStream - stream YouTube downloads through yt-dlp")
console = Console()


def configure_logging(level: str | None = None) -> None:
    """Route log records through rich."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the HTTP API."""
    import uvicorn

    configure_logging()
    host = host or settings.host
    port = port or settings.port
    console.print(f"Server running on [bold]http://{host}:{port}[/bold]")
    uvicorn.run(
        "tubestream.api.routes:app",
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


@app.command()
def info(
    url: str = typer.Argument(..., help="YouTube video URL"),
):
    """Show title, channel, duration and available formats for a video."""
    service = MetadataService(
        extractor=YtDlpExtractor.from_settings(settings),
        cache=MetadataCache(settings.info_ttl_seconds),
        allowed_hosts=settings.allowed_hosts,
    )

    try:
        metadata = asyncio.run(service.get_info(service.validate(url)))
    except TubeStreamError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]{metadata.title}[/bold]")
    console.print(f"Channel: {metadata.channel}")
    console.print(f"Duration: {metadata.duration_label}")

    table = Table(title="Formats")
    table.add_column("Label", style="cyan")
    table.add_column("Height", justify="right")
    table.add_column("format=", style="dim")
    for rendition in metadata.renditions:
        table.add_row(
            rendition.label,
            str(rendition.height) if rendition.height else "-",
            "audio" if rendition.is_audio_only else rendition.label.rstrip("p"),
        )
    console.print(table)


if __name__ == "__main__":
    app()
