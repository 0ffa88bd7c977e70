"""Git helpers used to correlate artifacts with the current revision."""

import logging
import subprocess
from typing import List, Optional

logger = logging.getLogger(__name__)


def _run_git(args: List[str], cwd: Optional[str] = None) -> Optional[str]:
    """Run ``git <args>`` and return trimmed stdout, or None on any failure."""
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"git {' '.join(args)} failed to run: {e}")
        return None
    if completed.returncode != 0:
        logger.debug(f"git {' '.join(args)} exited {completed.returncode}: {completed.stderr.strip()}")
        return None
    return completed.stdout.strip()


def is_git_repo(cwd: Optional[str] = None) -> bool:
    return _run_git(["rev-parse", "--git-dir"], cwd) is not None


def get_head_sha(cwd: Optional[str] = None) -> Optional[str]:
    """Full HEAD commit SHA, or None outside a repository."""
    return _run_git(["rev-parse", "HEAD"], cwd) or None


def get_current_branch(cwd: Optional[str] = None) -> str:
    """Current branch name, or an empty string outside a repository."""
    return _run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd) or ""
