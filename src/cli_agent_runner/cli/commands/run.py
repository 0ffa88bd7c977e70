"""Run command for CLI Agent Runner CLI."""

import asyncio
import logging
import os

import click

from cli_agent_runner.constants import (
    CORRELATED_TASKS,
    DEFAULT_MAX_WATCH_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_PROMPT_DELAY_SECONDS,
    DEFAULT_WORKSPACE,
)
from cli_agent_runner.models.session import OutputFormat, SessionOptions
from cli_agent_runner.providers.cursor_agent import ProviderError
from cli_agent_runner.services.session_service import run_session
from cli_agent_runner.utils.git import get_current_branch, get_head_sha, is_git_repo
from cli_agent_runner.utils.log import setup_logging
from cli_agent_runner.utils.model_names import resolve_model_name
from cli_agent_runner.utils.prompts import (
    PromptNotFoundError,
    combine_prompt_with_input,
    load_prompt,
)

logger = logging.getLogger(__name__)


@click.command()
@click.argument("prompt")
@click.argument("user_input", nargs=-1)
@click.option("--workspace", default=DEFAULT_WORKSPACE, help="Workspace folder (default: .ai)")
@click.option("-i", "--interactive", is_flag=True, help="Fully interactive mode")
@click.option("-p", "--print", "print_mode", is_flag=True, help="Run in print mode")
@click.option(
    "--output-format",
    type=click.Choice([f.value for f in OutputFormat]),
    default=OutputFormat.TEXT.value,
    help="Output format in print mode: text or json",
)
@click.option("-m", "--model", help="Model to use (e.g. gpt-5, sonnet-4, sonnet-4-thinking)")
@click.option(
    "--prompt-delay",
    type=click.FloatRange(min=0),
    default=DEFAULT_PROMPT_DELAY_SECONDS,
    help="Seconds to wait before typing the prompt",
)
@click.option(
    "--poll-interval",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_POLL_INTERVAL_SECONDS,
    help="Seconds between completion checks",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_MAX_WATCH_SECONDS,
    help="Seconds to watch for the completion artifact",
)
@click.option("--no-auto-exit", is_flag=True, help="Keep the agent open after completion")
@click.option("--debug", is_flag=True, help="Verbose diagnostics on stderr")
@click.pass_context
def run(
    ctx,
    prompt,
    user_input,
    workspace,
    interactive,
    print_mode,
    output_format,
    model,
    prompt_delay,
    poll_interval,
    timeout,
    no_auto_exit,
    debug,
):
    """Run a workspace prompt via the Cursor agent CLI."""
    if debug:
        setup_logging(debug=True)

    try:
        # Checked before anything else so a bad name never reaches a command line
        if model:
            model = resolve_model_name(model)

        slug, contents = load_prompt(prompt, workspace)
    except (ValueError, PromptNotFoundError) as e:
        raise click.ClickException(str(e))

    combined = combine_prompt_with_input(contents, " ".join(user_input))
    logger.debug(f"Prompt length: {len(combined)} chars")

    correlation_token = None
    if slug in CORRELATED_TASKS and is_git_repo():
        correlation_token = get_head_sha()
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"Correlation token for {slug} on branch "
                f"{get_current_branch() or 'unknown'}: {correlation_token or 'none'}"
            )

    options = SessionOptions(
        print_mode=print_mode,
        interactive=interactive,
        # Output format only applies to print mode
        output_format=OutputFormat(output_format) if print_mode else None,
        model=model,
        prompt_delay=prompt_delay,
    )

    if not interactive:
        click.echo(f'Running prompt "{slug}" via Cursor Agent...\n')

    try:
        outcome = asyncio.run(
            run_session(
                combined,
                options,
                task_slug=slug,
                workspace=workspace,
                cwd=os.getcwd(),
                correlation_token=correlation_token,
                poll_interval=poll_interval,
                max_duration=timeout,
                auto_exit=not no_auto_exit,
            )
        )
    except ProviderError as e:
        raise click.ClickException(str(e))

    logger.debug(f"Session ended: {outcome.kind.value} (exit code {outcome.exit_code})")
    ctx.exit(outcome.exit_code)
