"""Domain errors shared by the realtime dispatcher and the chat/trip services.

Each error carries a stable ``code`` so the socket layer can report it to the
originating session as ``error{message, code}`` and the HTTP layer can map it
to a status code.
"""

from __future__ import annotations


class RealtimeError(Exception):
    code = "error"
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_payload(self) -> dict[str, str]:
        return {"message": self.message, "code": self.code}


class AuthError(RealtimeError):
    """Credential missing, malformed or not resolvable to a user."""

    code = "unauthorized"
    default_message = "Authentication error"


class TokenExpiredError(AuthError):
    code = "jwt_expired"
    default_message = "Token expired"


class AuthorizationError(RealtimeError):
    code = "forbidden"
    default_message = "Access denied"


class ValidationError(RealtimeError):
    code = "invalid"
    default_message = "Invalid payload"


class NotFoundError(RealtimeError):
    code = "not_found"
    default_message = "Not found"


class AlreadyAnswered(RealtimeError):
    code = "already_answered"
    default_message = "This question has already been answered"


class AlreadyJoined(RealtimeError):
    code = "already_joined"
    default_message = "You have already joined this trip"


class AlreadyExists(RealtimeError):
    code = "already_exists"
    default_message = "Already exists"


class TransientStoreError(RealtimeError):
    code = "store_unavailable"
    default_message = "Temporary storage error, please retry"


class ConflictError(RealtimeError):
    code = "conflict"
    default_message = "The resource was modified concurrently"
