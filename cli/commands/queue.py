"""Publish queue CLI commands."""
import click
from rich.console import Console
from rich.table import Table

from src.exceptions import PublisherError
from src.services.core.admin import AdminService
from src.services.core.queue_reconciler import QueueReconciler

console = Console()

STATE_COLORS = {
    "waiting": "cyan",
    "delayed": "yellow",
    "active": "blue",
    "completed": "green",
    "failed": "red",
    "cancelled": "dim",
}


@click.command(name="queue-stats")
def queue_stats():
    """Show publish queue counts per state."""
    service = AdminService()

    try:
        counts = service.queue_overview(recent_limit=1)["counts"]
    finally:
        service.close()

    table = Table(title="Publish Queue")
    table.add_column("State", style="cyan")
    table.add_column("Jobs", justify="right")

    for state in ("waiting", "delayed", "active", "completed", "failed"):
        color = STATE_COLORS[state]
        table.add_row(f"[{color}]{state}[/{color}]", str(counts[state]))
    table.add_row("[bold]total[/bold]", f"[bold]{counts['total']}[/bold]")

    console.print(table)


@click.command(name="list-jobs")
@click.option(
    "--state",
    type=click.Choice(["waiting", "delayed", "active", "completed", "failed", "cancelled"]),
    default=None,
    help="Only show jobs in this state",
)
@click.option("--limit", default=20, help="Maximum number of jobs to show")
def list_jobs(state, limit):
    """List recent publish jobs."""
    from src.repositories.queue_repository import QueueRepository

    with QueueRepository() as queue_repo:
        jobs = queue_repo.list_jobs(state=state, limit=limit)

        if not jobs:
            console.print("[yellow]No jobs found[/yellow]")
            return

        table = Table(title=f"Publish Jobs ({len(jobs)})")
        table.add_column("Job ID", style="dim")
        table.add_column("Post ID")
        table.add_column("State")
        table.add_column("Attempts", justify="right")
        table.add_column("Not Before", style="cyan")
        table.add_column("Last Error")

        for job in jobs:
            display = job.display_state()
            color = STATE_COLORS.get(display, "white")
            table.add_row(
                job.id[:8],
                job.post_id,
                f"[{color}]{display}[/{color}]",
                str(job.attempt_count),
                job.not_before.strftime("%Y-%m-%d %H:%M:%S"),
                (job.last_error or "")[:60],
            )

        console.print(table)


@click.command(name="publish-now")
@click.argument("post_id")
def publish_now(post_id):
    """Queue POST_ID for immediate publishing (FAILED posts are reset first)."""
    service = AdminService()

    try:
        result = service.publish_post(post_id, triggered_by="cli")
        console.print("[bold green]✓ Post queued for publishing[/bold green]")
        console.print(f"  Post: {result['post_id']}")
        console.print(f"  Job: {result['job_id']}")
    except PublisherError as e:
        console.print(f"[bold red]✗ Error:[/bold red] {str(e)}")
        raise click.Abort()
    finally:
        service.close()


@click.command(name="retry-post")
@click.argument("post_id")
def retry_post(post_id):
    """Retry a FAILED post."""
    service = AdminService()

    try:
        result = service.retry_post(post_id, triggered_by="cli")
        console.print("[bold green]✓ Post queued for retry[/bold green]")
        console.print(f"  Post: {result['post_id']}")
        console.print(f"  Job: {result['job_id']}")
        console.print(f"  Previous attempts: {result['attempt_count']}")
    except PublisherError as e:
        console.print(f"[bold red]✗ Error:[/bold red] {str(e)}")
        raise click.Abort()
    finally:
        service.close()


@click.command(name="sync-scheduled")
def sync_scheduled():
    """Enqueue SCHEDULED posts that have no job."""
    console.print("[bold blue]Syncing scheduled posts with the queue...[/bold blue]")

    service = QueueReconciler()

    try:
        result = service.sync_scheduled_posts(triggered_by="cli")
        console.print("\n[bold green]✓ Sync complete![/bold green]")
        console.print(f"  Scheduled posts: {result['scheduled_posts']}")
        console.print(f"  Enqueued: {result['enqueued']}")
    except Exception as e:
        console.print(f"[bold red]✗ Error:[/bold red] {str(e)}")
        raise click.Abort()
    finally:
        service.close()


@click.command(name="reconcile")
@click.option("--cleanup", is_flag=True, help="Also purge finished jobs past retention")
def reconcile(cleanup):
    """Recover stalled jobs and posts stuck in PUBLISHING."""
    console.print("[bold blue]Reconciling publish queue...[/bold blue]")

    service = QueueReconciler()

    try:
        result = service.reconcile_stuck_posts(triggered_by="cli")
        console.print("\n[bold green]✓ Reconciliation complete![/bold green]")
        console.print(f"  Stalled jobs: {result['stalled_jobs']}")
        console.print(f"  Stuck posts: {result['stuck_posts']}")
        console.print(f"  Requeued: {result['requeued']}")
        console.print(f"  Failed: {result['failed']}")

        if cleanup:
            deleted = service.cleanup_finished_jobs(triggered_by="cli")
            console.print(f"  Finished jobs removed: {deleted}")
    except Exception as e:
        console.print(f"[bold red]✗ Error:[/bold red] {str(e)}")
        raise click.Abort()
    finally:
        service.close()
