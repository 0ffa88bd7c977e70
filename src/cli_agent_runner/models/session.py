"""Agent session data models."""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from cli_agent_runner.constants import DEFAULT_PROMPT_DELAY_SECONDS


class OutputFormat(str, Enum):
    """Output format accepted by the agent in print mode."""

    TEXT = "text"
    JSON = "json"


class SessionOptions(BaseModel):
    """How the agent should be launched and driven."""

    print_mode: bool = Field(default=False, description="Run the agent with -p")
    interactive: bool = Field(default=False, description="Proxy the local terminal")
    output_format: Optional[OutputFormat] = None
    model: Optional[str] = None
    prompt_delay: float = Field(default=DEFAULT_PROMPT_DELAY_SECONDS, ge=0)


class AgentResult(BaseModel):
    """Outcome of one agent process. The pty merges stdout and stderr."""

    output: str = ""
    exit_code: int


class OutcomeKind(str, Enum):
    """How a session ended."""

    COMPLETE = "complete"
    EXITED = "exited"
    TIMEOUT = "timeout"


class SessionOutcome(BaseModel):
    """Final decision of the session coordinator."""

    kind: OutcomeKind
    exit_code: int
    artifact_path: Optional[Path] = None
