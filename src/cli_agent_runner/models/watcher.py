"""Completion watcher data models."""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DetectionMode(str, Enum):
    """Which filesystem change pattern counts as completion evidence."""

    NEW_FILES = "new-files"
    MODIFY_EXISTING = "modify-existing"
    BOTH = "both"

    @property
    def allows_files(self) -> bool:
        return self in (DetectionMode.MODIFY_EXISTING, DetectionMode.BOTH)

    @property
    def allows_directories(self) -> bool:
        return self in (DetectionMode.NEW_FILES, DetectionMode.BOTH)


class TargetKind(str, Enum):
    """How a watch target is checked."""

    FILE = "file"
    DIRECTORY = "directory"
    ANY = "any"  # decided by what exists on disk at poll time


class WatchTarget(BaseModel):
    """A filesystem path the watcher polls."""

    model_config = ConfigDict(frozen=True)

    path: Path
    kind: TargetKind = TargetKind.ANY


class WatcherConfig(BaseModel):
    """Per-session watcher configuration. Frozen so the start time never moves."""

    model_config = ConfigDict(frozen=True)

    targets: List[WatchTarget]
    detection_mode: DetectionMode = DetectionMode.NEW_FILES
    poll_interval: float = Field(gt=0, description="Seconds between poll ticks")
    max_duration: float = Field(gt=0, description="Seconds before the watcher times out")
    session_start_time: float = Field(description="Epoch seconds recorded at session start")
    correlation_token: Optional[str] = None


class CompletionEventType(str, Enum):
    """Terminal events a watcher can emit."""

    COMPLETE = "complete"
    TIMEOUT = "timeout"


class CompletionEvent(BaseModel):
    """The single terminal event of a watcher."""

    model_config = ConfigDict(frozen=True)

    type: CompletionEventType
    artifact_path: Optional[Path] = None
