"""Pseudo-terminal client.

Spawns a child process attached to a pty and exposes it to the asyncio event
loop as an :class:`AgentHandle`. On POSIX the pty master is registered as a
loop reader, so output is consumed cooperatively on the loop thread. On Windows
the ``pywinpty`` pipe is not selectable, so its reads are pumped through the
loop's default executor.

A pty carries a single merged output stream; there is no stdout/stderr split.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Callable, Dict, List, Optional, Protocol

from cli_agent_runner.constants import (
    KILL_GRACE_SECONDS,
    PTY_COLUMNS,
    PTY_READ_SIZE,
    PTY_REAP_INTERVAL_SECONDS,
    PTY_ROWS,
    PTY_TERM_NAME,
)
from cli_agent_runner.models.session import AgentResult

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


class PtyBackend(Protocol):
    """Minimal surface the handle needs from a platform pty implementation."""

    pid: int

    def fileno(self) -> Optional[int]: ...
    def read(self) -> str: ...
    def write(self, data: str) -> None: ...
    def isalive(self) -> bool: ...
    def exit_code(self) -> int: ...
    def signal(self, sig: int) -> None: ...
    def close(self) -> None: ...


class PexpectBackend:
    """POSIX pty backed by ``pexpect.spawn``."""

    def __init__(self, argv: List[str], cwd: Optional[str], env: Dict[str, str]):
        import pexpect

        self._pexpect = pexpect
        self._proc = pexpect.spawn(
            argv[0],
            args=argv[1:],
            cwd=cwd,
            env=env,
            encoding="utf-8",
            codec_errors="replace",
            dimensions=(PTY_ROWS, PTY_COLUMNS),
        )
        self.pid = self._proc.pid

    def fileno(self) -> Optional[int]:
        return self._proc.child_fd

    def read(self) -> str:
        """Return whatever is available now; raise EOFError once the pty is closed."""
        try:
            return self._proc.read_nonblocking(size=PTY_READ_SIZE, timeout=0)
        except self._pexpect.TIMEOUT:
            return ""
        except self._pexpect.EOF as e:
            raise EOFError(str(e)) from e

    def write(self, data: str) -> None:
        self._proc.send(data)

    def isalive(self) -> bool:
        return self._proc.isalive()

    def exit_code(self) -> int:
        if self._proc.exitstatus is not None:
            return self._proc.exitstatus
        if self._proc.signalstatus is not None:
            return 128 + self._proc.signalstatus
        return 1

    def signal(self, sig: int) -> None:
        self._proc.kill(sig)

    def close(self) -> None:
        if not self._proc.closed:
            self._proc.close(force=True)


class WinptyBackend:
    """Windows ConPTY backed by ``pywinpty``."""

    def __init__(self, argv: List[str], cwd: Optional[str], env: Dict[str, str]):
        from winpty import PtyProcess

        self._proc = PtyProcess.spawn(argv, cwd=cwd, env=env, dimensions=(PTY_ROWS, PTY_COLUMNS))
        self.pid = self._proc.pid

    def fileno(self) -> Optional[int]:
        return None

    def read(self) -> str:
        """Blocking read; only ever called from the executor pump."""
        return self._proc.read(PTY_READ_SIZE)

    def write(self, data: str) -> None:
        self._proc.write(data)

    def isalive(self) -> bool:
        return self._proc.isalive()

    def exit_code(self) -> int:
        status = self._proc.exitstatus
        return status if status is not None else 1

    def signal(self, sig: int) -> None:
        self._proc.terminate(force=sig == getattr(signal, "SIGKILL", None))

    def close(self) -> None:
        self._proc.close(force=True)


class AgentHandle:
    """Live handle on a pty child: write, kill, and an awaitable result.

    ``result`` resolves exactly once, when the child has exited and its
    remaining output has been drained.
    """

    def __init__(
        self,
        backend: PtyBackend,
        loop: asyncio.AbstractEventLoop,
        on_output: Optional[Callable[[str], None]] = None,
    ):
        self._backend = backend
        self._loop = loop
        self._on_output = on_output
        self._chunks: List[str] = []
        self._eof = False
        self._reader_fd: Optional[int] = None
        self._reap_handle: Optional[asyncio.TimerHandle] = None
        self._escalate_handle: Optional[asyncio.TimerHandle] = None
        self.result: "asyncio.Future[AgentResult]" = loop.create_future()

    @property
    def pid(self) -> int:
        return self._backend.pid

    @property
    def output(self) -> str:
        return "".join(self._chunks)

    @property
    def exited(self) -> bool:
        return self.result.done()

    def start(self) -> None:
        """Begin consuming output and watching for exit."""
        fd = self._backend.fileno()
        if fd is not None:
            self._reader_fd = fd
            self._loop.add_reader(fd, self._on_readable)
        else:
            self._loop.create_task(self._pump_blocking_reads())
        self._schedule_reap()

    def write(self, text: str) -> None:
        """Send text through the pty's data channel."""
        if self.exited:
            logger.debug(f"Ignoring write to exited agent pid={self.pid}")
            return
        self._backend.write(text)

    def kill(self) -> bool:
        """Terminate the child, escalating to SIGKILL after a grace period.

        Returns True if a signal was delivered.
        """
        if self.exited or not self._backend.isalive():
            return False
        try:
            self._backend.signal(signal.SIGTERM)
        except OSError as e:
            logger.warning(f"SIGTERM failed for agent pid={self.pid}: {e}")
            return False
        logger.info(f"Sent SIGTERM to agent pid={self.pid}")
        sigkill = getattr(signal, "SIGKILL", None)
        if sigkill is not None and self._escalate_handle is None:
            self._escalate_handle = self._loop.call_later(
                KILL_GRACE_SECONDS, self._escalate, sigkill
            )
        return True

    def _escalate(self, sig: int) -> None:
        self._escalate_handle = None
        if self.exited or not self._backend.isalive():
            return
        logger.warning(f"Agent pid={self.pid} ignored SIGTERM, sending SIGKILL")
        try:
            self._backend.signal(sig)
        except OSError as e:
            logger.debug(f"SIGKILL failed for pid={self.pid}: {e}")

    def _append(self, data: str) -> None:
        if not data:
            return
        self._chunks.append(data)
        if self._on_output is not None:
            self._on_output(data)

    def _on_readable(self) -> None:
        try:
            self._append(self._backend.read())
        except EOFError:
            self._stop_reading()

    def _stop_reading(self) -> None:
        self._eof = True
        if self._reader_fd is not None:
            self._loop.remove_reader(self._reader_fd)
            self._reader_fd = None

    async def _pump_blocking_reads(self) -> None:
        while not self._eof:
            try:
                data = await self._loop.run_in_executor(None, self._backend.read)
            except (EOFError, OSError):
                self._eof = True
                break
            self._append(data)

    def _schedule_reap(self) -> None:
        self._reap_handle = self._loop.call_later(PTY_REAP_INTERVAL_SECONDS, self._reap)

    def _reap(self) -> None:
        self._reap_handle = None
        if self._backend.isalive():
            self._schedule_reap()
            return
        self._finish()

    def _finish(self) -> None:
        if self._reader_fd is not None:
            # Drain what the child wrote before exiting
            while True:
                try:
                    data = self._backend.read()
                except EOFError:
                    break
                if not data:
                    break
                self._append(data)
            self._stop_reading()
        if self._escalate_handle is not None:
            self._escalate_handle.cancel()
            self._escalate_handle = None

        exit_code = self._backend.exit_code()
        try:
            self._backend.close()
        except OSError as e:
            logger.debug(f"Error closing pty for pid={self.pid}: {e}")
        logger.info(f"Agent pid={self.pid} exited with code {exit_code}")
        if not self.result.done():
            self.result.set_result(AgentResult(output=self.output, exit_code=exit_code))


def build_pty_env(base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Copy of the environment with the terminal type the pty advertises."""
    env = dict(os.environ if base is None else base)
    env["TERM"] = PTY_TERM_NAME
    return env


def spawn_pty(
    argv: List[str],
    *,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    on_output: Optional[Callable[[str], None]] = None,
) -> AgentHandle:
    """Spawn ``argv`` under a pty and return a started handle.

    Must be called from a running event loop. Spawn errors propagate unchanged;
    callers classify them.
    """
    loop = asyncio.get_running_loop()
    backend_cls = WinptyBackend if IS_WINDOWS else PexpectBackend
    backend = backend_cls(argv, cwd, build_pty_env(env))
    logger.debug(f"Spawned pty pid={backend.pid}: {argv}")
    handle = AgentHandle(backend, loop, on_output=on_output)
    handle.start()
    return handle
