"""Health check CLI command."""

import click
from rich.console import Console
from rich.table import Table

from src.services.core.health_check import HealthCheckService

console = Console()


@click.command(name="check-health")
def check_health():
    """Check database, queue and profile health."""
    console.print("[bold blue]Running health checks...[/bold blue]\n")

    service = HealthCheckService()
    try:
        result = service.check_all()
    finally:
        service.close()

    if result["status"] == "healthy":
        console.print("[bold green]✓ System Status: HEALTHY[/bold green]\n")
    else:
        console.print("[bold yellow]⚠ System Status: UNHEALTHY[/bold yellow]\n")

    table = Table(title="Health Check Results")
    table.add_column("Component", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Message")

    for name, check in result["checks"].items():
        mark, color = ("✓", "green") if check["healthy"] else ("✗", "red")
        table.add_row(name.title(), f"[{color}]{mark}[/{color}]", check["message"])

    console.print(table)
