"""Completion watcher service.

Detects that an agent task has finished by polling the filesystem for the
artifact the task is expected to write. The agent process is never consulted.

A watcher is a two-state machine (running -> stopped). It leaves the running
state exactly once, through one of:

- a matching artifact (emits ``complete`` with the artifact path),
- the duration cap expiring (emits ``timeout``),
- an external ``stop()`` (emits nothing).

The ``_stopped`` flag is the only guard between those three causes.
"""

import asyncio
import logging
import os
import re
import stat
from collections import defaultdict
from pathlib import Path
from typing import Callable, DefaultDict, List, Optional, Tuple

from cli_agent_runner.constants import (
    ARTIFACT_SUFFIX,
    DEFAULT_MAX_WATCH_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_WORKSPACE,
    FALLBACK_WATCH_DIRS,
    MTIME_TOLERANCE_SECONDS,
    PROMPT_ARTIFACT_MAP,
    WORKSPACE_PREFIX,
)
from cli_agent_runner.models.watcher import (
    CompletionEvent,
    CompletionEventType,
    DetectionMode,
    TargetKind,
    WatchTarget,
    WatcherConfig,
)

logger = logging.getLogger(__name__)

Listener = Callable[[CompletionEvent], None]

_KIND_FOR_MODE = {
    DetectionMode.NEW_FILES: TargetKind.DIRECTORY,
    DetectionMode.MODIFY_EXISTING: TargetKind.FILE,
    DetectionMode.BOTH: TargetKind.ANY,
}


def resolve_watch_targets(
    task_slug: Optional[str],
    workspace: str = DEFAULT_WORKSPACE,
    cwd: Optional[str] = None,
) -> Tuple[List[WatchTarget], DetectionMode]:
    """Resolve the artifact locations and detection mode for a task.

    Unknown (or missing) task slugs fall back to scanning every known output
    directory under the workspace for new files.
    """
    base = Path(cwd or os.getcwd())
    workspace_path = Path(workspace)
    if not workspace_path.is_absolute():
        workspace_path = base / workspace_path

    if task_slug and task_slug in PROMPT_ARTIFACT_MAP:
        watch_paths, mode = PROMPT_ARTIFACT_MAP[task_slug]
        kind = _KIND_FOR_MODE[mode]
        targets = []
        for raw in watch_paths:
            if raw.startswith(WORKSPACE_PREFIX):
                resolved = workspace_path / raw[len(WORKSPACE_PREFIX) :]
            else:
                resolved = base / raw
            logger.debug(f"Resolved watch path: {raw} -> {resolved}")
            targets.append(WatchTarget(path=resolved, kind=kind))
        return targets, mode

    targets = [
        WatchTarget(path=workspace_path / rel, kind=TargetKind.DIRECTORY)
        for rel in FALLBACK_WATCH_DIRS
    ]
    return targets, DetectionMode.NEW_FILES


def build_watcher_config(
    task_slug: Optional[str],
    session_start_time: float,
    *,
    workspace: str = DEFAULT_WORKSPACE,
    cwd: Optional[str] = None,
    correlation_token: Optional[str] = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    max_duration: float = DEFAULT_MAX_WATCH_SECONDS,
) -> WatcherConfig:
    """Build the watcher config for one session."""
    targets, mode = resolve_watch_targets(task_slug, workspace, cwd)
    return WatcherConfig(
        targets=targets,
        detection_mode=mode,
        poll_interval=poll_interval,
        max_duration=max_duration,
        session_start_time=session_start_time,
        correlation_token=correlation_token,
    )


def is_fresh(
    mtime: float, session_start_time: float, tolerance: float = MTIME_TOLERANCE_SECONDS
) -> bool:
    """True if a file modified at ``mtime`` counts as written during the session."""
    return mtime > session_start_time - tolerance


def contains_correlation_token(text: str, token: str) -> bool:
    """True if ``text`` has a ``**Head SHA:** <token>`` line (case-insensitive)."""
    pattern = re.compile(r"\*\*Head SHA:\*\*\s*" + re.escape(token), re.IGNORECASE)
    return pattern.search(text) is not None


class CompletionWatcher:
    """Poll watch targets until an artifact appears or the duration cap expires."""

    def __init__(self, config: WatcherConfig):
        self.config = config
        self._stopped = False
        self._started = False
        self._poll_handle: Optional[asyncio.TimerHandle] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._initial_handle: Optional[asyncio.Handle] = None
        self._listeners: DefaultDict[CompletionEventType, List[Listener]] = defaultdict(list)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.outcome: Optional["asyncio.Future[CompletionEvent]"] = None

    @property
    def stopped(self) -> bool:
        return self._stopped

    def add_listener(self, event_type: CompletionEventType, callback: Listener) -> None:
        """Register ``callback`` for a terminal event."""
        self._listeners[event_type].append(callback)

    def start(self) -> "CompletionWatcher":
        """Arm the poll and duration timers. Must run inside an event loop."""
        if self._started:
            return self
        self._started = True
        self._loop = asyncio.get_running_loop()
        self.outcome = self._loop.create_future()
        if self._stopped:
            # Stopped before it ever ran; stays stopped with nothing armed
            self.outcome.cancel()
            return self

        config = self.config
        logger.debug(
            "Completion watcher started: targets=%s mode=%s start=%s token=%s",
            ", ".join(str(t.path) for t in config.targets),
            config.detection_mode.value,
            config.session_start_time,
            config.correlation_token or "none",
        )

        # Immediate poll so a fast completion does not wait a full interval
        self._initial_handle = self._loop.call_soon(self._tick, False)
        self._poll_handle = self._loop.call_later(config.poll_interval, self._tick, True)
        self._timeout_handle = self._loop.call_later(config.max_duration, self._expire)
        return self

    def stop(self) -> None:
        """Stop polling and cancel every timer. Safe to call any number of times."""
        self._halt()
        if self.outcome is not None and not self.outcome.done():
            self.outcome.cancel()

    def _halt(self) -> bool:
        """Flip to stopped and clear timers. Returns False if already stopped."""
        if self._stopped:
            return False
        self._stopped = True
        for handle in (self._initial_handle, self._poll_handle, self._timeout_handle):
            if handle is not None:
                handle.cancel()
        self._initial_handle = self._poll_handle = self._timeout_handle = None
        return True

    def _emit(self, event: CompletionEvent) -> None:
        if self.outcome is not None and not self.outcome.done():
            self.outcome.set_result(event)
        for callback in list(self._listeners[event.type]):
            callback(event)

    def _expire(self) -> None:
        self._timeout_handle = None
        if not self._halt():
            return
        logger.debug(f"Completion watcher timed out after {self.config.max_duration}s")
        self._emit(CompletionEvent(type=CompletionEventType.TIMEOUT))

    def _tick(self, repeating: bool) -> None:
        if self._stopped:
            return
        match = self.poll_once()
        if match is not None:
            if self._halt():
                logger.debug(f"Match found: {match}")
                self._emit(CompletionEvent(type=CompletionEventType.COMPLETE, artifact_path=match))
            return
        if repeating and not self._stopped:
            self._poll_handle = self._loop.call_later(self.config.poll_interval, self._tick, True)

    def poll_once(self) -> Optional[Path]:
        """Check every target once, in order. Read-only; never raises on I/O."""
        for target in self.config.targets:
            if self._stopped:
                return None
            match = self._check_target(target)
            if match is not None:
                return match
        return None

    def _check_target(self, target: WatchTarget) -> Optional[Path]:
        mode = self.config.detection_mode
        try:
            st = target.path.stat()
        except OSError as e:
            logger.debug(f"Path {target.path} not accessible: {e}")
            return None

        if stat.S_ISREG(st.st_mode):
            if not mode.allows_files or target.kind == TargetKind.DIRECTORY:
                return None
            logger.debug(f"Polling file: {target.path}")
            return self._check_file(target.path)

        if stat.S_ISDIR(st.st_mode):
            if not mode.allows_directories or target.kind == TargetKind.FILE:
                return None
            logger.debug(f"Polling directory: {target.path}")
            return self._scan_directory(target.path)

        return None

    def _scan_directory(self, directory: Path) -> Optional[Path]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            logger.debug(f"Poll error in {directory}: {e}")
            return None

        for entry in entries:
            if self._stopped:
                return None
            try:
                is_file = entry.is_file()
            except OSError:
                continue
            if is_file and entry.name.endswith(ARTIFACT_SUFFIX):
                match = self._check_file(Path(entry.path))
                if match is not None:
                    return match
        return None

    def _check_file(self, path: Path) -> Optional[Path]:
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return None

        start = self.config.session_start_time
        if not is_fresh(mtime, start):
            logger.debug(
                f"File {path} mtime {mtime} <= session start {start} "
                f"(adjusted: {start - MTIME_TOLERANCE_SECONDS})"
            )
            return None

        token = self.config.correlation_token
        if token:
            try:
                contents = path.read_text(encoding="utf-8", errors="replace")
            except OSError:
                return None
            if not contains_correlation_token(contents, token):
                logger.debug(f"File {path} is fresh but lacks Head SHA {token}")
                return None

        return path
