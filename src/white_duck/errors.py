"""Error taxonomy shared by the REST API and the tool protocol."""

from http import HTTPStatus

GENERIC_ERROR_MESSAGE = "Internal server error"


class GatewayError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message = GENERIC_ERROR_MESSAGE

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(GatewayError):
    status = HTTPStatus.BAD_REQUEST
    default_message = "Invalid request"


class AuthError(GatewayError):
    status = HTTPStatus.UNAUTHORIZED
    default_message = "Authentication required"


class InvalidCredentials(AuthError):
    default_message = "Invalid credentials"


class InvalidOrExpiredToken(AuthError):
    default_message = "Invalid or expired token"


class InvalidApiKey(AuthError):
    default_message = "Invalid API key"


class MissingCredential(AuthError):
    default_message = "Authentication required"


class NotFoundError(GatewayError):
    status = HTTPStatus.NOT_FOUND
    default_message = "Not found"


class EngineError(GatewayError):
    """SQL engine failure; the message is the engine's diagnostic, unmodified."""

    status = HTTPStatus.BAD_REQUEST
    default_message = "Query failed"


class UnexpectedError(GatewayError):
    """Anything uncategorized. Never exposes internal details to clients."""

    def to_dict(self) -> dict:
        return {"error": GENERIC_ERROR_MESSAGE}
