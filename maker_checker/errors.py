"""
Service error taxonomy.

Services raise these instead of bare exceptions so the API layer
can map each failure to the right HTTP status. The message of every
error except DependencyError is safe to show to the end user.
"""


class ServiceError(Exception):
    """Base class for expected service failures."""

    public_message: str | None = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def user_message(self) -> str:
        return self.public_message or self.message


class ValidationError(ServiceError, ValueError):
    """Bad input shape or value."""


class NotFoundError(ServiceError):
    """A referenced entity does not exist."""


class ConflictError(ServiceError):
    """A state-machine precondition was violated."""


class DependencyError(ServiceError):
    """
    The datastore or the notification channel failed.

    The message holds the internal detail for the server log;
    callers only ever see the generic public message.
    """

    public_message = "The service is temporarily unavailable. Please try again."


class SecurityError(ServiceError):
    """
    A one-time code check failed.

    Deliberately generic so callers cannot tell which check
    (expiry, attempts, mismatch) rejected the code.
    """

    public_message = "Invalid or expired verification code. Please request a new code."


class CredentialsError(SecurityError):
    """Email/password login failed. Never says which part was wrong."""

    public_message = "Invalid email or password."
