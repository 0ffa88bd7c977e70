"""Unit tests for the session coordinator."""

import asyncio
import logging
from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest

from cli_agent_runner.models.session import AgentResult, OutcomeKind, SessionOptions
from cli_agent_runner.services.session_service import run_session, should_auto_exit

INTERACTIVE = SessionOptions(interactive=True, prompt_delay=0)


class FakeHandle:
    def __init__(self, loop, exit_code=0):
        self.pid = 4242
        self.exit_code = exit_code
        self.kill_calls = 0
        self.result = loop.create_future()

    @property
    def exited(self):
        return self.result.done()

    def write(self, text):
        pass

    def finish(self, exit_code=None):
        if not self.result.done():
            code = self.exit_code if exit_code is None else exit_code
            self.result.set_result(AgentResult(exit_code=code))

    def kill(self):
        self.kill_calls += 1
        if self.exited:
            return False
        asyncio.get_running_loop().call_soon(self.finish, 143)
        return True


class VanishedAgentHandle(FakeHandle):
    """Handle whose process disappeared before it could be signalled."""

    def kill(self):
        self.kill_calls += 1
        raise ProcessLookupError(3, "No such process")


class FakeProvider:
    """Provider double that yields a scripted handle."""

    def __init__(self, exit_after=None, exit_code=0, on_open=None, handle_cls=FakeHandle):
        self.handle_cls = handle_cls
        self.exit_after = exit_after
        self.exit_code = exit_code
        self.on_open = on_open
        self.handle = None
        self.opened = []
        self.ran = []

    @asynccontextmanager
    async def open(self, prompt):
        self.opened.append(prompt)
        loop = asyncio.get_running_loop()
        self.handle = self.handle_cls(loop, self.exit_code)
        if self.on_open is not None:
            self.on_open(self.handle)
        if self.exit_after is not None:
            loop.call_later(self.exit_after, self.handle.finish)
        yield self.handle

    async def run(self, prompt):
        self.ran.append(prompt)
        return AgentResult(exit_code=self.exit_code)


@pytest.fixture
def reviews_dir(tmp_path):
    path = tmp_path / ".ai" / "context" / "pr_reviews"
    path.mkdir(parents=True)
    return path


def run(provider, tmp_path, **kwargs):
    params = dict(
        task_slug="pre_push_review",
        cwd=str(tmp_path),
        poll_interval=0.05,
        max_duration=1.0,
        provider=provider,
    )
    params.update(kwargs)
    options = params.pop("options", INTERACTIVE)
    return asyncio.run(asyncio.wait_for(run_session("prompt", options, **params), 5.0))


class TestShouldAutoExit:
    def test_requires_interactive(self):
        assert should_auto_exit(SessionOptions()) is False

    @patch("cli_agent_runner.services.session_service.supports_terminal_control", return_value=True)
    def test_disabled_flag(self, mock_supported):
        assert should_auto_exit(INTERACTIVE, auto_exit=False) is False

    @patch("cli_agent_runner.services.session_service.supports_terminal_control", return_value=True)
    def test_interactive_on_terminal(self, mock_supported):
        assert should_auto_exit(INTERACTIVE) is True

    @patch("cli_agent_runner.services.session_service.supports_terminal_control", return_value=False)
    def test_unsupported_platform_warns(self, mock_supported, caplog):
        with caplog.at_level(logging.WARNING):
            assert should_auto_exit(INTERACTIVE) is False
        assert "without completion detection" in caplog.text


@patch("cli_agent_runner.services.session_service.supports_terminal_control", return_value=True)
class TestRunSession:
    def test_artifact_completes_session(self, mock_supported, tmp_path, reviews_dir, capsys):
        artifact = reviews_dir / "review.md"

        def write_artifact(handle):
            asyncio.get_running_loop().call_later(0.1, artifact.write_text, "done")

        provider = FakeProvider(on_open=write_artifact)
        outcome = run(provider, tmp_path)

        assert outcome.kind == OutcomeKind.COMPLETE
        assert outcome.exit_code == 0
        assert outcome.artifact_path == artifact
        assert provider.handle.kill_calls == 1
        assert "Task complete" in capsys.readouterr().err

    @patch("cli_agent_runner.services.session_service.KILL_GRACE_SECONDS", 0.05)
    def test_failed_kill_still_completes(self, mock_supported, tmp_path, reviews_dir, capsys):
        artifact = reviews_dir / "review.md"

        def write_artifact(handle):
            asyncio.get_running_loop().call_later(0.05, artifact.write_text, "done")

        provider = FakeProvider(on_open=write_artifact, handle_cls=VanishedAgentHandle)
        outcome = run(provider, tmp_path)

        assert outcome.kind == OutcomeKind.COMPLETE
        assert outcome.exit_code == 0
        assert outcome.artifact_path == artifact
        assert provider.handle.kill_calls == 1
        assert "Task complete" in capsys.readouterr().err

    def test_natural_exit_propagates_code(self, mock_supported, tmp_path, reviews_dir):
        provider = FakeProvider(exit_after=0.1, exit_code=3)

        outcome = run(provider, tmp_path)

        assert outcome.kind == OutcomeKind.EXITED
        assert outcome.exit_code == 3
        assert provider.handle.kill_calls == 0

    def test_timeout_leaves_agent_running(self, mock_supported, tmp_path, reviews_dir, capsys):
        provider = FakeProvider(exit_after=0.4, exit_code=5)

        outcome = run(provider, tmp_path, max_duration=0.15)

        assert outcome.kind == OutcomeKind.TIMEOUT
        assert outcome.exit_code == 5
        assert provider.handle.kill_calls == 0
        assert "exit it manually" in capsys.readouterr().err

    def test_artifact_and_exit_in_same_turn_counts_as_complete(
        self, mock_supported, tmp_path, reviews_dir
    ):
        artifact = reviews_dir / "review.md"

        def write_and_exit(handle):
            artifact.write_text("done")
            handle.finish(1)

        provider = FakeProvider(on_open=write_and_exit)
        outcome = run(provider, tmp_path)

        assert outcome.kind == OutcomeKind.COMPLETE
        assert outcome.exit_code == 0

    def test_correlation_token_must_match(self, mock_supported, tmp_path, reviews_dir):
        def write_artifacts(handle):
            (reviews_dir / "a.md").write_text("**Head SHA:** stale")
            asyncio.get_running_loop().call_later(
                0.1, (reviews_dir / "b.md").write_text, "**Head SHA:** abc123"
            )

        provider = FakeProvider(on_open=write_artifacts)
        outcome = run(provider, tmp_path, correlation_token="abc123")

        assert outcome.kind == OutcomeKind.COMPLETE
        assert outcome.artifact_path == reviews_dir / "b.md"

    def test_non_interactive_runs_without_watcher(self, mock_supported, tmp_path):
        provider = FakeProvider(exit_code=2)

        outcome = run(provider, tmp_path, options=SessionOptions(print_mode=True))

        assert outcome.kind == OutcomeKind.EXITED
        assert outcome.exit_code == 2
        assert provider.ran == ["prompt"]
        assert provider.opened == []

    def test_no_auto_exit_runs_without_watcher(self, mock_supported, tmp_path, reviews_dir):
        (reviews_dir / "review.md").write_text("done")
        provider = FakeProvider(exit_code=0)

        outcome = run(provider, tmp_path, auto_exit=False)

        assert outcome.kind == OutcomeKind.EXITED
        assert provider.ran == ["prompt"]
