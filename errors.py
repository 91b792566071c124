"""Exception types raised by the budget tracker adapters."""


class BudgetTrackerError(Exception):
    """Base class for all application errors."""


class ConfigurationError(BudgetTrackerError):
    """Missing or invalid configuration. Fatal to initialization."""


class AuthenticationError(BudgetTrackerError):
    """Sign-in with the auth service failed."""


class ValidationError(BudgetTrackerError):
    """User input rejected before any remote call."""


class StoreError(BudgetTrackerError):
    """A document store read, write or subscription failed."""


class LinkError(BudgetTrackerError):
    """The bank-link API or widget reported a failure."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
