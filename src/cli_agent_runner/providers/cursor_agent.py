"""Cursor agent provider implementation."""

import asyncio
import logging
import os
import shlex
import shutil
import signal
import subprocess
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Tuple

from cli_agent_runner.clients.pty import IS_WINDOWS, AgentHandle, spawn_pty
from cli_agent_runner.constants import (
    AGENT_EXECUTABLE,
    AGENT_NOT_FOUND_REMEDIATION,
    AGENT_SUBCOMMAND,
)
from cli_agent_runner.models.session import AgentResult, SessionOptions
from cli_agent_runner.utils.model_names import resolve_model_name
from cli_agent_runner.utils.terminal import RawTerminal, StdinReader

logger = logging.getLogger(__name__)


# Custom exception for provider errors
class ProviderError(Exception):
    """Exception raised for provider-specific errors."""

    pass


class AgentNotFoundError(ProviderError):
    """The agent executable is not on PATH."""

    def __init__(self, message: str = AGENT_NOT_FOUND_REMEDIATION):
        super().__init__(message)


def get_shell_invocation(command: str) -> List[str]:
    """Wrap ``command`` for the platform shell so PATH lookup and shims work."""
    if IS_WINDOWS:
        return ["cmd.exe", "/c", command]
    shell = os.environ.get("SHELL") or "/bin/bash"
    return [shell, "-c", command]


def check_agent_cli() -> Tuple[bool, str]:
    """Check the agent executable is on PATH and report its version line.

    Returns (available, detail). A non-zero ``--version`` exit still counts as
    available since the command exists.
    """
    path = shutil.which(AGENT_EXECUTABLE)
    if path is None:
        return False, AGENT_NOT_FOUND_REMEDIATION
    try:
        completed = subprocess.run(
            [path, "--version"], capture_output=True, text=True, timeout=15
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        return True, f"{path} (version unavailable: {e})"
    version = completed.stdout.strip().splitlines()
    return True, f"{path} {version[0]}" if version else path


class CursorAgentProvider:
    """Provider for Cursor agent CLI tool integration."""

    def __init__(self, options: SessionOptions, cwd: Optional[str] = None):
        self.options = options
        self.cwd = cwd or os.getcwd()

    def build_args(self) -> List[str]:
        """Build the agent argument list.

        The model is the only user-influenced value and goes through the
        resolver first; a rejected name raises before anything is spawned.
        """
        args = [AGENT_SUBCOMMAND]

        if self.options.model:
            args.extend(["--model", resolve_model_name(self.options.model)])

        if self.options.print_mode:
            args.append("-p")
            if self.options.output_format is not None:
                args.extend(["--output-format", self.options.output_format.value])

        return args

    def build_command(self) -> str:
        """Build the full agent command string handed to the shell.

        The prompt is never part of this string; it is typed into the pty.
        """
        return shlex.join([AGENT_EXECUTABLE, *self.build_args()])

    def _spawn(self) -> AgentHandle:
        command = self.build_command()

        if shutil.which(AGENT_EXECUTABLE) is None:
            raise AgentNotFoundError()

        on_output = _forward_to_stdout if self.options.interactive else None
        try:
            handle = spawn_pty(get_shell_invocation(command), cwd=self.cwd, on_output=on_output)
        except Exception as e:
            raise ProviderError(f"Failed to spawn cursor agent: {e}") from e

        logger.info(f"Started cursor agent pid={handle.pid}: {command}")
        return handle

    def _schedule_prompt(self, handle: AgentHandle, prompt: str) -> asyncio.TimerHandle:
        """Type the prompt once the agent's input box has had time to appear."""

        def inject() -> None:
            if handle.exited:
                return
            logger.debug(f"Injecting prompt ({len(prompt)} chars) into pid={handle.pid}")
            handle.write(prompt)
            if not self.options.interactive:
                handle.write("\r")

        loop = asyncio.get_running_loop()
        timer = loop.call_later(self.options.prompt_delay, inject)
        handle.result.add_done_callback(lambda _: timer.cancel())
        return timer

    @asynccontextmanager
    async def open(self, prompt: str) -> AsyncIterator[AgentHandle]:
        """Spawn the agent, schedule prompt injection and yield the live handle.

        In interactive mode the local terminal is switched to raw mode and
        local keystrokes are proxied into the pty for the lifetime of the
        scope. Terminal mode is restored as soon as the child exits, and again
        (idempotently) when the scope is left on any path.
        """
        loop = asyncio.get_running_loop()
        raw = RawTerminal()
        stdin_fd: Optional[int] = None
        signals: List[int] = []

        handle = self._spawn()
        try:
            self._schedule_prompt(handle, prompt)

            if self.options.interactive:
                raw.acquire()
                handle.result.add_done_callback(lambda _: raw.restore())
                if raw.active:
                    stdin_fd = sys.stdin.fileno()
                    reader = StdinReader(stdin_fd)
                    loop.add_reader(stdin_fd, lambda: _proxy_stdin(loop, reader, handle))
                if not IS_WINDOWS:
                    for sig in (signal.SIGINT, signal.SIGTERM):
                        loop.add_signal_handler(sig, handle.kill)
                        signals.append(sig)

            yield handle
        except BaseException:
            # Do not leave an orphaned agent behind a failed or cancelled session
            handle.kill()
            raise
        finally:
            if stdin_fd is not None:
                loop.remove_reader(stdin_fd)
            for sig in signals:
                loop.remove_signal_handler(sig)
            raw.restore()

    async def run(self, prompt: str) -> AgentResult:
        """Run the agent to completion and return its merged output and exit code."""
        async with self.open(prompt) as handle:
            return await handle.result


def _forward_to_stdout(data: str) -> None:
    sys.stdout.write(data)
    sys.stdout.flush()


def _proxy_stdin(loop: asyncio.AbstractEventLoop, reader: StdinReader, handle: AgentHandle) -> None:
    try:
        data = reader.read()
    except OSError as e:
        logger.debug(f"Local stdin read failed: {e}")
        data = None
    if data is None:
        # stdin closed; stop polling it
        loop.remove_reader(reader.fd)
        return
    if data:
        handle.write(data)
