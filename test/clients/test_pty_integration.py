"""Integration tests for the pty client with real child processes.

Usage:
    pytest test/clients/test_pty_integration.py -v
"""

import asyncio
import sys

import pytest

from cli_agent_runner.clients.pty import build_pty_env, spawn_pty

pytestmark = [
    pytest.mark.integration,
    pytest.mark.slow,
    pytest.mark.skipif(sys.platform == "win32", reason="POSIX pty only"),
]


def run_child(code, interact=None, timeout=10.0):
    """Run ``python -c code`` under a pty and return (result, echoed output)."""
    echoed = []

    async def scenario():
        handle = spawn_pty([sys.executable, "-c", code], on_output=echoed.append)
        if interact is not None:
            await interact(handle)
        return await asyncio.wait_for(handle.result, timeout)

    return asyncio.run(scenario()), "".join(echoed)


class TestPtySpawn:
    def test_captures_output_and_exit_code(self):
        result, echoed = run_child("print('hello from pty')")

        assert result.exit_code == 0
        assert "hello from pty" in result.output
        assert echoed == result.output

    def test_propagates_nonzero_exit(self):
        result, _ = run_child("import sys; sys.exit(3)")

        assert result.exit_code == 3

    def test_child_sees_terminal(self):
        result, _ = run_child(
            "import os, sys; print(sys.stdin.isatty(), os.environ.get('TERM'))"
        )

        assert "True xterm-256color" in result.output

    def test_pty_geometry(self):
        result, _ = run_child("import os; print(os.get_terminal_size(0))")

        assert "columns=120" in result.output
        assert "lines=30" in result.output

    def test_written_input_reaches_child(self):
        async def interact(handle):
            await asyncio.sleep(0.2)
            handle.write("ping\r")

        result, _ = run_child("line = input(); print('got:' + line)", interact=interact)

        assert result.exit_code == 0
        assert "got:ping" in result.output

    def test_kill_terminates_child(self):
        async def interact(handle):
            await asyncio.sleep(0.2)
            assert handle.kill() is True

        result, _ = run_child("import time; time.sleep(30)", interact=interact)

        assert result.exit_code != 0

    def test_kill_after_exit_is_noop(self):
        async def scenario():
            handle = spawn_pty([sys.executable, "-c", "pass"])
            await asyncio.wait_for(handle.result, 10.0)
            return handle.kill()

        assert asyncio.run(scenario()) is False


class TestPtyEnv:
    def test_term_is_forced(self):
        env = build_pty_env({"TERM": "dumb", "HOME": "/tmp"})

        assert env == {"TERM": "xterm-256color", "HOME": "/tmp"}
