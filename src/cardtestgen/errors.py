from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ErrorKind = Literal[
    "not_found",
    "authentication",
    "timeout",
    "structural",
    "syntax",
    "selector_mismatch",
    "css_mismatch",
    "invalid_input",
    "unfixable",
]


class CardTestGenError(Exception):
    """Base class for precondition and boundary failures."""

    kind: ErrorKind = "unfixable"


class InvalidInputError(CardTestGenError, ValueError):
    kind: ErrorKind = "invalid_input"


class PathTraversalError(InvalidInputError):
    pass


class ConfigurationError(CardTestGenError):
    kind: ErrorKind = "invalid_input"


class GenerationError(CardTestGenError):
    kind: ErrorKind = "invalid_input"


class CardNotFoundError(CardTestGenError):
    kind: ErrorKind = "not_found"

    def __init__(self, card_id: str, detail: str = "") -> None:
        message = f"Card not found: {card_id}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.card_id = card_id


class AuthenticationRequiredError(CardTestGenError):
    kind: ErrorKind = "authentication"


class ExtractionTimeoutError(CardTestGenError):
    kind: ErrorKind = "timeout"


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    kind: ErrorKind
    message: str
    selector: str | None = None

    def __str__(self) -> str:
        return self.message
