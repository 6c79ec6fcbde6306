"""
Messaging errors.

Raised by the engine, the repositories and the directory client. The API layer
maps each kind to an HTTP status code (see main.py).
"""


class MessagingError(Exception):
    """Base class for every error the engine raises."""

    status_code = 500

    def __init__(self, message: str = "Messaging error"):
        super().__init__(message)
        self.message = message


class InvalidRequestError(MessagingError):
    """Malformed input: self-message, blank or oversized content. HTTP 400."""

    status_code = 400

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message)


class NotFoundError(MessagingError):
    """Referenced conversation, message or profile does not exist. HTTP 404."""

    status_code = 404

    def __init__(self, message: str = "The requested entity was not found."):
        super().__init__(message)


class ForbiddenError(MessagingError):
    """Caller is not allowed to touch the resource. HTTP 403."""

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class UpstreamUnavailableError(MessagingError):
    """Directory or storage failed, or a read deadline expired. HTTP 503."""

    status_code = 503

    def __init__(self, message: str = "Upstream service unavailable"):
        super().__init__(message)


class DeliveryFailedError(MessagingError):
    """A real-time notification could not reach a session. Logged only."""


class ConversationConflictError(MessagingError):
    """A conversation for the same participant pair already exists."""

    status_code = 409

    def __init__(self, pair_key: str):
        super().__init__(f"Conversation already exists for pair {pair_key}")
        self.pair_key = pair_key
