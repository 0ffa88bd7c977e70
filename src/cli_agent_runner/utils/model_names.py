"""Model name validation and typo correction.

The model name is the only user-supplied value that ends up on the agent's
command line, so it is checked against a strict character whitelist before
anything else happens. Recognition runs afterwards: an exact, case-insensitive
hit resolves to the canonical spelling; anything else is reported back to the
user, with a suggestion when a close match exists. Suggestions are never
applied automatically.
"""

import logging
import re
from typing import Iterable, Optional, Tuple

from cli_agent_runner.constants import MODEL_SIMILARITY_THRESHOLD, SUPPORTED_MODELS

logger = logging.getLogger(__name__)

MODEL_NAME_PATTERN = re.compile(r"[A-Za-z0-9._-]+")


class ModelNameValidationError(ValueError):
    """Model name contains characters that are unsafe on a command line."""


class ModelNotRecognizedError(ValueError):
    """Model name is well-formed but not a supported model."""

    def __init__(self, model: str, suggestion: Optional[str], supported: Tuple[str, ...]):
        self.model = model
        self.suggestion = suggestion
        self.supported = supported
        if suggestion:
            message = f"Unknown model '{model}'. Did you mean '{suggestion}'?"
        else:
            message = (
                f"Unknown model '{model}' and no close match found. "
                f"Supported models: {', '.join(supported)}"
            )
        super().__init__(message)


def validate_model_name(model: str) -> str:
    """Reject model names with characters outside ``[A-Za-z0-9._-]``.

    The value is never sanitized and continued: a rejected name raises.
    """
    if not MODEL_NAME_PATTERN.fullmatch(model):
        raise ModelNameValidationError(
            f"Invalid model name: {model!r}. Only alphanumeric characters, dots, "
            "hyphens, and underscores are allowed."
        )
    return model


def similarity(a: str, b: str) -> float:
    """Character-overlap score between two names.

    Counts the characters of the shorter string that occur anywhere in the
    longer one (case-insensitive) and divides by the longer string's length.
    """
    a, b = a.lower(), b.lower()
    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if not longer:
        return 0.0
    hits = sum(1 for char in shorter if char in longer)
    return hits / len(longer)


def suggest_model(model: str, supported: Iterable[str] = SUPPORTED_MODELS) -> Optional[str]:
    """Return the closest supported model for a typo, or None."""
    candidates = list(supported)
    lowered = model.lower()

    stripped = re.sub(r"[-_]", "", lowered)
    for candidate in candidates:
        if re.sub(r"[-_]", "", candidate.lower()) == stripped:
            return candidate

    hyphenated = lowered.replace("_", "-")
    for candidate in candidates:
        if candidate.lower().replace("_", "-") == hyphenated:
            return candidate

    best: Optional[str] = None
    best_score = 0.0
    for candidate in candidates:
        score = similarity(model, candidate)
        if score > best_score:
            best, best_score = candidate, score
    if best is not None and best_score > MODEL_SIMILARITY_THRESHOLD:
        logger.debug(f"Fuzzy model suggestion for {model!r}: {best} (score={best_score:.2f})")
        return best
    return None


def resolve_model_name(model: str, supported: Tuple[str, ...] = SUPPORTED_MODELS) -> str:
    """Validate ``model`` and return its canonical spelling.

    Raises:
        ModelNameValidationError: the name contains unsafe characters
        ModelNotRecognizedError: the name is not supported (``.suggestion`` may be set)
    """
    validate_model_name(model)

    for candidate in supported:
        if candidate.lower() == model.lower():
            return candidate

    raise ModelNotRecognizedError(model, suggest_model(model, supported), supported)
