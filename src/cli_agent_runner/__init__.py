"""CLI Agent Runner: drive an interactive agent CLI and detect task completion."""

__version__ = "0.1.0"
