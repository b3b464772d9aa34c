"""Admin API server command."""
import click
import uvicorn
from rich.console import Console

from src.config.settings import settings

console = Console()


@click.command(name="serve-api")
@click.option("--host", default=None, help="Bind address (defaults to API_HOST)")
@click.option("--port", type=int, default=None, help="Bind port (defaults to API_PORT)")
def serve_api(host, port):
    """Run the admin HTTP API."""
    host = host or settings.API_HOST
    port = port or settings.API_PORT
    console.print(f"[bold blue]Starting admin API on {host}:{port}[/bold blue]")
    uvicorn.run("src.api.app:app", host=host, port=port, log_level=settings.LOG_LEVEL.lower())
