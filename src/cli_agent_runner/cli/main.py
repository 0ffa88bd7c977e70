"""Main CLI entry point for CLI Agent Runner."""

import click

from cli_agent_runner import __version__
from cli_agent_runner.cli.commands.check import check
from cli_agent_runner.cli.commands.run import run
from cli_agent_runner.utils.log import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="aiw")
def cli():
    """Run workspace prompts through the Cursor agent CLI."""
    setup_logging()


cli.add_command(run)
cli.add_command(check)


def main():
    cli()


if __name__ == "__main__":
    main()
