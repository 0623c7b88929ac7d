"""Error types shared across services and handlers."""


class BotError(Exception):
    """Base class for bot errors."""


class AuthorizationDenied(BotError):
    """Raised when a user fails an access policy.

    The message is safe to show to the user.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MediaAcquisitionFailed(BotError):
    """Raised when a media file could not be materialized locally."""

    def __init__(self, media_ref: str, reasons: list[str]) -> None:
        detail = "; ".join(reasons) if reasons else "no strategy succeeded"
        super().__init__(f"Could not acquire media {media_ref}: {detail}")
        self.media_ref = media_ref
        self.reasons = reasons


class InvalidStateTransition(BotError):
    """Raised when a feature command is not valid in the current state."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransientDependencyFailure(BotError):
    """Raised when an external dependency is unreachable."""

    def __init__(self, dependency: str, cause: Exception | None = None) -> None:
        super().__init__(f"{dependency} is unavailable")
        self.dependency = dependency
        self.cause = cause
