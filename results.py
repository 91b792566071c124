"""Tagged outcomes for user actions and the single status message they feed."""

from dataclasses import dataclass
from typing import Optional

from errors import (
    AuthenticationError,
    BudgetTrackerError,
    ConfigurationError,
    LinkError,
    StoreError,
    ValidationError,
)

SUCCESS = "success"
INFO = "info"
CONFIG_ERROR = "config_error"
AUTH_ERROR = "auth_error"
VALIDATION_ERROR = "validation_error"
STORE_ERROR = "store_error"
LINK_ERROR = "link_error"

_KIND_BY_ERROR = [
    (ConfigurationError, CONFIG_ERROR),
    (AuthenticationError, AUTH_ERROR),
    (ValidationError, VALIDATION_ERROR),
    (StoreError, STORE_ERROR),
    (LinkError, LINK_ERROR),
]


@dataclass(frozen=True)
class Outcome:
    """Result of one operation: a kind tag plus the text shown to the user."""

    operation: str
    kind: str
    message: str

    @property
    def ok(self) -> bool:
        return self.kind in (SUCCESS, INFO)

    @classmethod
    def success(cls, operation: str, message: str) -> "Outcome":
        return cls(operation, SUCCESS, message)

    @classmethod
    def info(cls, operation: str, message: str) -> "Outcome":
        return cls(operation, INFO, message)

    @classmethod
    def from_error(cls, operation: str, error: BudgetTrackerError, message: str) -> "Outcome":
        kind = STORE_ERROR
        for error_type, error_kind in _KIND_BY_ERROR:
            if isinstance(error, error_type):
                kind = error_kind
                break
        return cls(operation, kind, message)


class StatusMessage:
    """Holds the most recent outcome. Newer outcomes overwrite older ones."""

    def __init__(self):
        self.current: Optional[Outcome] = None

    def set(self, outcome: Outcome) -> Outcome:
        self.current = outcome
        return outcome

    def clear(self) -> None:
        self.current = None

    @property
    def text(self) -> str:
        return self.current.message if self.current else ""

    @property
    def kind(self) -> Optional[str]:
        return self.current.kind if self.current else None
