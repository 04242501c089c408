"""Error taxonomy shared by the HTTP and real-time surfaces.

Every client-facing failure is a ``ChatError`` carrying a short
human-readable message and the HTTP status code used on request paths.
The WebSocket session delivers the same message as a scoped ``error``
event instead.
"""


class ChatError(Exception):
    """Base exception for chat errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(ChatError):
    """Missing, invalid or expired credential, or unknown identity."""
    def __init__(self, message: str = "Failed to authenticate"):
        super().__init__(message, status_code=401)


class AuthorizationError(ChatError):
    """Authenticated caller may not act on the target resource."""
    def __init__(self, message: str = "Access denied"):
        super().__init__(message, status_code=403)


class ChatValidationError(ChatError):
    """Malformed identifier, bad text or missing required field."""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class NotFoundError(ChatError):
    """Raised when a team or message does not exist."""
    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class PersistenceError(ChatError):
    """Raised when a store operation fails."""
    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, status_code=500)
