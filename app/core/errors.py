class ChatError(Exception):
    """Base class for errors raised by the chat core."""

    code = "chat_error"


class Unauthorized(ChatError):
    """No resolved identity for an operation that needs one."""

    code = "unauthorized"


class StoreUnavailable(ChatError):
    """The backing datastore could not be reached or rejected the call."""

    code = "store_unavailable"


class InvalidInput(ChatError):
    """Rejected at the boundary: empty text, malformed coordinates, unknown event."""

    code = "invalid_input"


class InternalError(ChatError):
    """An unexpected failure while handling one frame; the connection survives it."""

    code = "internal_error"
