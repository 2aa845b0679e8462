"""
Error taxonomy shared by every component.

Each error carries the HTTP status the query surface maps it to. Errors raised
inside event handlers never reach publishers: consumers catch, log and drop.

- ValidationError: malformed input (400)
- NotFoundError: missing record (404)
- ConflictError: duplicate active subscription or illegal state change (409)
- InfrastructureError: broker or store unavailable (503 when surfaced at all;
  background work logs it and degrades to a no-op)
- PartialFailure: not an exception. A batch fan-out where some recipients
  succeeded and some failed is recorded per recipient, never raised.
"""

from dataclasses import dataclass, field


class LibraryEventsError(Exception):
    """Base class for all errors with an HTTP mapping."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LibraryEventsError):
    status_code = 400


class NotFoundError(LibraryEventsError):
    status_code = 404


class ConflictError(LibraryEventsError):
    status_code = 409


class InfrastructureError(LibraryEventsError):
    status_code = 503


class PayloadError(ValidationError):
    """A channel message that failed validation at the channel boundary."""

    def __init__(self, channel: str, message: str):
        super().__init__(f"Invalid {channel} payload: {message}")
        self.channel = channel


@dataclass
class PartialFailure:
    """
    Per-recipient outcome of a fan-out where not every delivery succeeded.

    Keyed by user id; two users may share an email address.
    """

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def __str__(self) -> str:
        return f"{len(self.failed)}/{self.total} deliveries failed"
