"""Session service: run the agent and end the session when its task is done.

The coordinator races the completion watcher against the agent process:

- complete: the expected artifact appeared; the agent is killed and the
  session exits 0.
- timeout: no artifact within the duration cap; the agent is left running,
  the user is told to exit it manually, and its exit code is propagated.
- exited: the agent ended on its own; its exit code is propagated.
"""

import asyncio
import logging
import sys
import time
from typing import Optional

from cli_agent_runner.constants import (
    DEFAULT_MAX_WATCH_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_WORKSPACE,
    KILL_GRACE_SECONDS,
)
from cli_agent_runner.models.session import OutcomeKind, SessionOptions, SessionOutcome
from cli_agent_runner.models.watcher import CompletionEventType
from cli_agent_runner.providers.cursor_agent import CursorAgentProvider
from cli_agent_runner.services.completion_watcher import (
    CompletionWatcher,
    build_watcher_config,
)
from cli_agent_runner.utils.terminal import supports_terminal_control

logger = logging.getLogger(__name__)


def notify(message: str) -> None:
    """Write a user-facing notice to stderr.

    Lines end with CRLF since the local terminal may be in raw mode.
    """
    sys.stderr.write(f"\r\n[aiw] {message}\r\n")
    sys.stderr.flush()


def should_auto_exit(options: SessionOptions, auto_exit: bool = True) -> bool:
    """Decide whether completion detection should race the agent."""
    if not options.interactive or not auto_exit:
        return False
    if not supports_terminal_control():
        logger.warning(
            "Interactive auto-exit needs a POSIX terminal on stdin; "
            "running without completion detection"
        )
        return False
    return True


async def run_session(
    prompt: str,
    options: SessionOptions,
    *,
    task_slug: Optional[str] = None,
    workspace: str = DEFAULT_WORKSPACE,
    cwd: Optional[str] = None,
    correlation_token: Optional[str] = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    max_duration: float = DEFAULT_MAX_WATCH_SECONDS,
    auto_exit: bool = True,
    provider: Optional[CursorAgentProvider] = None,
) -> SessionOutcome:
    """Run one agent session and return how it ended."""
    # Recorded before anything is spawned so artifacts written by a fast agent still count
    session_start_time = time.time()
    provider = provider or CursorAgentProvider(options, cwd=cwd)

    if not should_auto_exit(options, auto_exit):
        result = await provider.run(prompt)
        return SessionOutcome(kind=OutcomeKind.EXITED, exit_code=result.exit_code)

    config = build_watcher_config(
        task_slug,
        session_start_time,
        workspace=workspace,
        cwd=cwd,
        correlation_token=correlation_token,
        poll_interval=poll_interval,
        max_duration=max_duration,
    )
    watcher = CompletionWatcher(config).start()
    try:
        async with provider.open(prompt) as handle:
            await asyncio.wait(
                {watcher.outcome, handle.result}, return_when=asyncio.FIRST_COMPLETED
            )

            event = None
            if watcher.outcome.done() and not watcher.outcome.cancelled():
                event = watcher.outcome.result()

            # An artifact observed in the same turn as the exit still counts as completion
            if event is not None and event.type == CompletionEventType.COMPLETE:
                logger.info(f"Completion artifact detected: {event.artifact_path}")
                notify(f"Task complete ({event.artifact_path}). Closing Cursor Agent.")
                try:
                    handle.kill()
                except OSError as e:
                    # Completion stands even when the kill fails
                    logger.warning(f"Failed to stop agent pid={handle.pid}: {e}")
                try:
                    # Covers the SIGTERM grace period plus the SIGKILL escalation
                    await asyncio.wait_for(asyncio.shield(handle.result), KILL_GRACE_SECONDS * 2)
                except asyncio.TimeoutError:
                    logger.warning(f"Agent pid={handle.pid} still running after kill")
                return SessionOutcome(
                    kind=OutcomeKind.COMPLETE, exit_code=0, artifact_path=event.artifact_path
                )

            if event is not None and event.type == CompletionEventType.TIMEOUT and not handle.exited:
                logger.info(f"No completion artifact after {max_duration}s")
                notify(
                    f"No completion artifact detected after {max_duration:g}s. "
                    "Cursor Agent is still running; exit it manually when done."
                )
                result = await handle.result
                return SessionOutcome(kind=OutcomeKind.TIMEOUT, exit_code=result.exit_code)

            watcher.stop()
            result = handle.result.result()
            logger.info(f"Agent exited before completion was detected (code {result.exit_code})")
            return SessionOutcome(kind=OutcomeKind.EXITED, exit_code=result.exit_code)
    finally:
        watcher.stop()
