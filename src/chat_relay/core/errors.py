"""Error taxonomy shared by the store, the delivery channel and the pipeline."""


class ChatRelayError(RuntimeError):
    """Base exception for chat relay failures."""


class ValidationError(ChatRelayError):
    """Raised when a store operation receives malformed input.

    Indicates a programming error in the caller; never converted into a
    delivery state.
    """


class NotFoundError(ChatRelayError):
    """Raised when a mutation targets a conversation or message that does not exist."""


class TransportError(ChatRelayError):
    """Raised when the backend relay cannot be reached or times out."""


class AuthError(TransportError):
    """Raised when no bearer token is available for an outbound call.

    Queued like any other transport failure; retries will keep failing until
    the user re-authenticates.
    """
