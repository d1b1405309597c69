"""
Domain error taxonomy.

Services raise these; the application factory registers one error
handler that turns any ``DeviceHubError`` into a JSON response using
the class's ``status_code`` and ``title``.  Routes never catch them.
"""


class DeviceHubError(Exception):
    """Base class for all errors the core reports to callers."""

    status_code: int = 400
    title: str = "Bad Request"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "error": {
                "status": self.status_code,
                "title": self.title,
                "detail": self.message,
            }
        }


class ValidationError(DeviceHubError):
    """Malformed input: missing field, bad enum value, out-of-range number."""

    status_code = 400
    title = "Validation Error"


class AuthorizationError(DeviceHubError):
    """The caller lacks the privilege required for the action."""

    status_code = 403
    title = "Forbidden"


class NotFoundError(DeviceHubError):
    """Unknown device, request or user id."""

    status_code = 404
    title = "Not Found"


class DuplicateRequestError(DeviceHubError):
    """A pending request already exists for the device."""

    status_code = 409
    title = "Duplicate Request"


class InvalidStateError(DeviceHubError):
    """The device or request is not in the state the transition requires."""

    status_code = 409
    title = "Invalid State"


class StorageError(DeviceHubError):
    """
    The database failed while a unit of work was being applied.

    The transaction has already been rolled back when this is raised,
    so the caller may retry the whole operation.
    """

    status_code = 503
    title = "Storage Unavailable"
