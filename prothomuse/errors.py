"""
Error taxonomy shared by the session core, the stores and the streaming path.

Errors raised from HTTP handlers are rendered by the exception handlers in
prothomuse.main as the standard JSON envelope using ``status_code``.
"""

from fastapi import status


class ProthomuseError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ProthomuseError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class ConflictError(ProthomuseError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource conflict"


class NotFound(ProthomuseError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class Unauthorized(ProthomuseError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class MissingCredential(Unauthorized):
    default_message = "Credential is required"


class UnknownAPIKey(Unauthorized):
    default_message = "Invalid API key"


class InvalidCredential(Unauthorized):
    default_message = "Invalid credentials"


class AccountInactive(Unauthorized):
    default_message = "Account is not active"


class TokenInvalid(Unauthorized):
    default_message = "Invalid token"


class TokenExpired(Unauthorized):
    default_message = "Token has expired"


class StorageError(ProthomuseError):
    """A round trip to the database failed."""
    default_message = "Storage operation failed"


class CredentialError(ProthomuseError):
    default_message = "Credential operation failed"


class HashingError(CredentialError):
    default_message = "Password hashing failed"


class EntropyError(CredentialError):
    default_message = "Randomness source unavailable"


class TokenSigningError(CredentialError):
    default_message = "Token signing key is not configured"


# Streaming path only. Never rendered as HTTP responses.

class TransportError(ProthomuseError):
    default_message = "Connection failed"


class DecodeError(ProthomuseError):
    default_message = "Malformed telemetry frame"


class UpgradeError(TransportError):
    default_message = "WebSocket upgrade failed"
