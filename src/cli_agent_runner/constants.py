"""Constants for CLI Agent Runner (aiw) application.

This module defines all configuration constants used throughout the runner,
including agent command settings, pseudo-terminal geometry, completion watcher
timing and the task-to-artifact map.

The runner drives the Cursor agent CLI inside a pseudo-terminal, types a prompt
into it, and watches the workspace for the artifact the prompt is expected to
produce so the session can end on its own once the task is done.
"""

from cli_agent_runner.models.watcher import DetectionMode
from cli_agent_runner.utils.env import get_float_env, get_str_env

# =============================================================================
# Agent Command Configuration
# =============================================================================
# Executable resolved via PATH; the agent subcommand and flags are appended to it
AGENT_EXECUTABLE = get_str_env("AIW_AGENT_COMMAND", "cursor")
AGENT_SUBCOMMAND = "agent"

# Seconds to wait after spawn before typing the prompt, so the agent's own
# input box is ready to receive keystrokes
DEFAULT_PROMPT_DELAY_SECONDS = get_float_env("AIW_PROMPT_DELAY_SECONDS", 1.0)

# Grace period between SIGTERM and SIGKILL when the agent is killed
KILL_GRACE_SECONDS = get_float_env("AIW_KILL_GRACE_SECONDS", 2.0)

# Shown whenever the agent executable cannot be found on PATH
AGENT_NOT_FOUND_REMEDIATION = (
    f"The '{AGENT_EXECUTABLE}' command was not found in PATH. "
    "Make sure Cursor is installed and the CLI is available. "
    "You may need to run 'Install cursor command' from the Cursor command palette."
)

# =============================================================================
# Pseudo-terminal Configuration
# =============================================================================
PTY_COLUMNS = 120
PTY_ROWS = 30
PTY_TERM_NAME = "xterm-256color"

# Bytes/characters requested per pty read
PTY_READ_SIZE = 4096

# How often the exit reaper checks whether the child is still alive (seconds)
PTY_REAP_INTERVAL_SECONDS = 0.05

# =============================================================================
# Completion Watcher Configuration
# =============================================================================
DEFAULT_POLL_INTERVAL_SECONDS = get_float_env("AIW_POLL_INTERVAL_SECONDS", 0.3)

# Maximum watch duration before the watcher gives up (10 minutes)
DEFAULT_MAX_WATCH_SECONDS = get_float_env("AIW_MAX_WATCH_SECONDS", 600.0)

# Absorbs clock and filesystem timestamp granularity skew
MTIME_TOLERANCE_SECONDS = 0.05

# Only files with this suffix count as artifacts in directory scans
ARTIFACT_SUFFIX = ".md"

# =============================================================================
# Workspace Layout
# =============================================================================
DEFAULT_WORKSPACE = ".ai"
WORKSPACE_PREFIX = ".ai/"
PROMPTS_DIR_NAME = "prompts"

# Task slug -> (watch paths, detection mode). Paths starting with ".ai/" are
# rebased onto the workspace; anything else resolves against the current directory.
PROMPT_ARTIFACT_MAP = {
    "pre_push_review": ([".ai/context/pr_reviews"], DetectionMode.NEW_FILES),
    "repo_refresh": (
        [".ai/context/repo_context/REPO_CONTEXT.md"],
        DetectionMode.MODIFY_EXISTING,
    ),
    "repo_discover": ([".ai/context/repo_context/REPO_CONTEXT.md"], DetectionMode.BOTH),
    "feature_plan": ([".ai/context/feature_plans"], DetectionMode.NEW_FILES),
    "debug_senior": ([".ai/context/debug_notes"], DetectionMode.NEW_FILES),
    "context_sync": (["docs/PROJECT_CONTEXT.md"], DetectionMode.MODIFY_EXISTING),
}

# Directories (relative to the workspace) scanned for unknown task slugs
FALLBACK_WATCH_DIRS = [
    "context/pr_reviews",
    "context/feature_plans",
    "context/debug_notes",
    "context/repo_context",
]

# Tasks whose artifact records the HEAD revision it was produced for
CORRELATED_TASKS = {"pre_push_review"}

# =============================================================================
# Model Configuration
# =============================================================================
SUPPORTED_MODELS = (
    "auto",
    "composer-1",
    "sonnet-4.5",
    "sonnet-4.5-thinking",
    "opus-4.5",
    "opus-4.5-thinking",
    "opus-4.1",
    "gemini-3-pro",
    "gpt-5",
    "gpt-5.1",
    "gpt-5-codex",
    "gpt-5.1-codex",
    "grok",
    "sonnet-4",
    "sonnet-4-thinking",
)

# Character-overlap score a typo suggestion must exceed
MODEL_SIMILARITY_THRESHOLD = 0.7
