"""Prompt template loading."""

import logging
import os
from pathlib import Path
from typing import Optional, Tuple

from cli_agent_runner.constants import DEFAULT_WORKSPACE, PROMPTS_DIR_NAME

logger = logging.getLogger(__name__)


class PromptNotFoundError(FileNotFoundError):
    """No template exists for the requested prompt."""


def resolve_workspace_paths(
    workspace: Optional[str] = None, cwd: Optional[str] = None
) -> Tuple[Path, Path]:
    """Return (workspace_dir, prompts_dir) resolved against ``cwd``."""
    base = Path(cwd or os.getcwd())
    workspace_dir = (base / (workspace or DEFAULT_WORKSPACE)).resolve()
    return workspace_dir, workspace_dir / PROMPTS_DIR_NAME


def normalize_prompt_name(name: str) -> str:
    """Turn a prompt name into its slug by trimming and dropping a ``.md`` suffix."""
    trimmed = name.strip()
    if trimmed.lower().endswith(".md"):
        return trimmed[:-3]
    return trimmed


def prompt_file_path(slug: str, workspace: Optional[str] = None, cwd: Optional[str] = None) -> Path:
    _, prompts_dir = resolve_workspace_paths(workspace, cwd)
    return prompts_dir / f"{slug}.md"


def load_prompt(
    name: str, workspace: Optional[str] = None, cwd: Optional[str] = None
) -> Tuple[str, str]:
    """Load a prompt template and return (slug, contents)."""
    slug = normalize_prompt_name(name)
    path = prompt_file_path(slug, workspace, cwd)
    try:
        contents = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise PromptNotFoundError(f"Prompt '{slug}' not found at {path}") from e
    logger.debug(f"Loaded prompt {slug} from {path} ({len(contents)} chars)")
    return slug, contents


def combine_prompt_with_input(contents: str, user_input: Optional[str] = None) -> str:
    """Append user input below a separator; blank input leaves the prompt unchanged."""
    if not user_input or not user_input.strip():
        return contents
    return f"{contents}\n\n---\nUser Input:\n{user_input}"
