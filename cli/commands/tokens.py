"""Token maintenance CLI commands."""
import asyncio

import click
from rich.console import Console
from rich.table import Table

from src.services.integrations.token_manager import TokenManager

console = Console()


@click.command(name="refresh-tokens")
@click.option("--threshold-hours", type=int, default=None, help="Refresh tokens expiring within N hours")
@click.option("--profile", "profile_id", default=None, help="Refresh a single profile (reactivates it on success)")
def refresh_tokens(threshold_hours, profile_id):
    """Refresh expiring platform tokens now."""
    manager = TokenManager()

    try:
        if profile_id:
            outcome = asyncio.run(manager.refresh_profile(profile_id, triggered_by="cli"))
            if outcome.success:
                expiry = outcome.expires_at.strftime("%Y-%m-%d %H:%M") if outcome.expires_at else "never"
                console.print(f"[bold green]✓ Token refreshed[/bold green] (expires: {expiry})")
            else:
                console.print(f"[bold red]✗ Refresh failed:[/bold red] {outcome.message}")
                if outcome.deactivated:
                    console.print("  [yellow]Profile deactivated - reconnect the account[/yellow]")
            return

        console.print("[bold blue]Refreshing expiring tokens...[/bold blue]")
        result = asyncio.run(
            manager.refresh_all_expiring(threshold_hours=threshold_hours, triggered_by="cli")
        )
    except Exception as e:
        console.print(f"[bold red]✗ Error:[/bold red] {str(e)}")
        raise click.Abort()
    finally:
        manager.close()

    if not result["total"]:
        console.print("[green]No tokens need refreshing[/green]")
        return

    table = Table(title="Token Refresh Results")
    table.add_column("Profile", style="cyan")
    table.add_column("Platform")
    table.add_column("Result", justify="center")
    table.add_column("Message")

    for item in result["results"]:
        if item.get("skipped"):
            status = "[dim]skipped[/dim]"
        elif item["success"]:
            status = "[green]✓[/green]"
        else:
            status = "[red]✗[/red]"
        table.add_row(item["username"] or item["profile_id"], item["platform"] or "-", status, item["message"])

    console.print(table)
    console.print(
        f"\n  Refreshed: {result['refreshed']}  Failed: {result['failed']}  Skipped: {result['skipped']}"
    )


@click.command(name="token-status")
@click.option("--threshold-hours", type=int, default=None, help="Expiry window in hours")
def token_status(threshold_hours):
    """Show profiles whose tokens expire soon."""
    manager = TokenManager()

    try:
        profiles = manager.get_profiles_needing_refresh(threshold_hours)
    finally:
        manager.close()

    if not profiles:
        console.print("[green]✓ No tokens expiring within the threshold[/green]")
        return

    table = Table(title=f"Tokens Expiring Soon ({len(profiles)})")
    table.add_column("Profile", style="cyan")
    table.add_column("Platform")
    table.add_column("Expires At")
    table.add_column("Hours Left", justify="right")

    for profile in profiles:
        hours = profile["hours_until_expiry"]
        color = "red" if hours is not None and hours < 0 else "yellow"
        table.add_row(
            profile["username"] or profile["name"],
            profile["platform"],
            profile["token_expires_at"][:16],
            f"[{color}]{hours}[/{color}]",
        )

    console.print(table)
