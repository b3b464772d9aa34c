"""CLI main entry point."""

import click
from rich.console import Console

from cli.commands.api import serve_api
from cli.commands.health import check_health
from cli.commands.queue import (
    list_jobs,
    publish_now,
    queue_stats,
    reconcile,
    retry_post,
    sync_scheduled,
)
from cli.commands.tokens import refresh_tokens, token_status
from src import __version__

console = Console()


@click.group()
@click.version_option(version=__version__)
def cli():
    """Social Publisher - scheduled publishing to social platforms"""
    pass


cli.add_command(queue_stats)
cli.add_command(list_jobs)
cli.add_command(publish_now)
cli.add_command(retry_post)
cli.add_command(sync_scheduled)
cli.add_command(reconcile)
cli.add_command(refresh_tokens)
cli.add_command(token_status)
cli.add_command(check_health)
cli.add_command(serve_api)


if __name__ == "__main__":
    cli()
