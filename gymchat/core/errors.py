"""Error taxonomy of the messaging service.

Validation problems are raised before any store interaction. Store failures
are wrapped so routers can report them; nothing here is retried.
"""


class ChatError(Exception):

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MessageValidationError(ChatError, ValueError):

    status_code = 400


class MessageNotFoundError(ChatError):

    status_code = 404


class PermissionDeniedError(ChatError):

    status_code = 403


class ConcurrentUpdateError(ChatError):
    """The shared document changed between read and conditional write."""

    status_code = 409


class StoreUnavailableError(ChatError):

    status_code = 503
