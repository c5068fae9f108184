"""Domain error taxonomy."""


class ConsultationError(Exception):
    """Base class for expected, user-facing failures."""

    message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


class AuthError(ConsultationError):
    """Missing or invalid credentials."""

    message = "Invalid Telegram data"


class ConflictError(ConsultationError):
    """The client already holds an active session."""

    message = "Client already has an active session"


class SessionInactiveError(ConsultationError):
    """A message or action targeted a session that no longer accepts it."""

    message = "Session is not active"

    def __init__(
        self,
        message: str | None = None,
        *,
        expired: bool = False,
        just_expired: bool = False,
    ) -> None:
        super().__init__(message)
        self.expired = expired
        self.just_expired = just_expired


class InvalidRatingError(ConsultationError):
    """Rating value outside of the 1..5 range."""

    message = "Invalid rating"


class AlreadyCompletedError(ConsultationError):
    """The session has already been rated and completed."""

    message = "Session already completed"


class NotFoundError(ConsultationError):
    """Unknown session, provider or transaction."""

    message = "Not found"


class InvalidRequestError(ConsultationError):
    """Malformed input that is not covered by a more specific error."""

    message = "Invalid data"
