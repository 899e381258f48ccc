"""Error taxonomy shared by every layer of the feed core."""

from __future__ import annotations


class SoulSpeakError(RuntimeError):
    """Base class for all SoulSpeak failures.

    `title` and `description` are the user-facing wording used when the
    failure is surfaced as a notice.
    """

    title = "Error"

    def __init__(self, description: str, *, title: str | None = None) -> None:
        super().__init__(description)
        self.description = description
        if title is not None:
            self.title = title


class UnauthenticatedError(SoulSpeakError):
    """Raised when an action requires a signed-in viewer."""

    title = "Sign in required"


class ValidationFailure(SoulSpeakError):
    """Raised when input is rejected before any remote call is made."""

    title = "Invalid input"


class RemoteFailure(SoulSpeakError):
    """Raised when a remote collaborator errors or is unreachable."""


class IdentityError(RemoteFailure):
    """Raised when the identity provider cannot complete a request."""
