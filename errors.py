"""Error taxonomy shared by the services and the HTTP layer.

Every error carries the HTTP status it maps to and a human-readable
message. Extra keyword arguments are rendered next to ``message`` in the
JSON response body.
"""

from typing import Any, Dict, Optional


class StoreError(Exception):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, **self.extra}


class Unauthenticated(StoreError):
    status_code = 401
    default_message = "Unauthorized: No token"


class InvalidToken(StoreError):
    status_code = 401
    default_message = "Unauthorized: Invalid token"


class Forbidden(StoreError):
    status_code = 403
    default_message = "Not authorized as admin"


class ValidationError(StoreError):
    status_code = 400
    default_message = "Missing fields"


class InvalidArgument(StoreError):
    status_code = 400
    default_message = "Invalid argument"


class NotFound(StoreError):
    status_code = 404
    default_message = "Not found"


class Conflict(StoreError):
    status_code = 409
    default_message = "Already exists"


class NotificationFailure(StoreError):
    default_message = "Failed to send email"


class ServerError(StoreError):
    pass


class ConfigurationError(RuntimeError):
    """Raised at startup when a required setting is missing."""
