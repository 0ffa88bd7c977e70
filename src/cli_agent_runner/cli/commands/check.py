"""Check command for CLI Agent Runner CLI."""

import click

from cli_agent_runner.providers.cursor_agent import check_agent_cli


@click.command()
def check():
    """Verify the Cursor agent CLI is installed and on PATH."""
    available, detail = check_agent_cli()
    if not available:
        raise click.ClickException(detail)
    click.echo(f"Cursor agent CLI found: {detail}")
