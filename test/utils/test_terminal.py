"""Unit tests for local terminal control."""

import io
import os
from unittest.mock import MagicMock, patch

from cli_agent_runner.utils.terminal import (
    RawTerminal,
    StdinReader,
    supports_terminal_control,
)


def make_tty_stream(fd=7):
    stream = MagicMock()
    stream.isatty.return_value = True
    stream.fileno.return_value = fd
    return stream


class TestSupportsTerminalControl:
    def test_non_tty_stream_is_unsupported(self):
        assert supports_terminal_control(io.StringIO()) is False

    @patch("cli_agent_runner.utils.terminal.termios", None)
    def test_missing_termios_is_unsupported(self):
        assert supports_terminal_control(make_tty_stream()) is False

    @patch("cli_agent_runner.utils.terminal.termios")
    def test_tty_with_termios_is_supported(self, mock_termios):
        assert supports_terminal_control(make_tty_stream()) is True

    def test_closed_stream_is_unsupported(self):
        stream = io.StringIO()
        stream.close()
        assert supports_terminal_control(stream) is False


class TestRawTerminal:
    def test_acquire_is_noop_without_tty(self):
        raw = RawTerminal(io.StringIO())
        raw.acquire()

        assert raw.active is False
        raw.restore()

    @patch("cli_agent_runner.utils.terminal.tty")
    @patch("cli_agent_runner.utils.terminal.termios")
    def test_acquire_and_restore(self, mock_termios, mock_tty):
        mock_termios.tcgetattr.return_value = ["saved"]
        raw = RawTerminal(make_tty_stream(fd=7))

        raw.acquire()
        assert raw.active is True
        mock_termios.tcgetattr.assert_called_once_with(7)
        mock_tty.setraw.assert_called_once_with(7)

        raw.restore()
        assert raw.active is False
        mock_termios.tcsetattr.assert_called_once_with(7, mock_termios.TCSADRAIN, ["saved"])

    @patch("cli_agent_runner.utils.terminal.tty")
    @patch("cli_agent_runner.utils.terminal.termios")
    def test_restore_is_idempotent(self, mock_termios, mock_tty):
        raw = RawTerminal(make_tty_stream())
        raw.acquire()

        raw.restore()
        raw.restore()
        raw.restore()

        assert mock_termios.tcsetattr.call_count == 1

    @patch("cli_agent_runner.utils.terminal.tty")
    @patch("cli_agent_runner.utils.terminal.termios")
    def test_context_manager_restores_on_error(self, mock_termios, mock_tty):
        raw = RawTerminal(make_tty_stream())

        try:
            with raw:
                assert raw.active is True
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert raw.active is False
        mock_termios.tcsetattr.assert_called_once()


class TestStdinReader:
    def test_multibyte_character_split_across_reads(self):
        read_fd, write_fd = os.pipe()
        reader = StdinReader(read_fd)
        encoded = "é".encode("utf-8")
        try:
            os.write(write_fd, encoded[:1])
            assert reader.read() == ""

            os.write(write_fd, encoded[1:] + b"x")
            assert reader.read() == "éx"

            os.close(write_fd)
            write_fd = None
            assert reader.read() is None
        finally:
            if write_fd is not None:
                os.close(write_fd)
            os.close(read_fd)
