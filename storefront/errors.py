"""Error types raised by stores and handlers and rendered by the app."""


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are missing or unsafe."""


class ApiError(Exception):
    status_code = 500
    message = "Something went wrong."

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self):
        return {"success": False, "errors": self.message}


class ValidationError(ApiError):
    status_code = 400
    message = "Invalid request."


class Conflict(ApiError):
    status_code = 400
    message = "An account with this email already exists."


class InvalidCredentials(ApiError):
    status_code = 400
    message = "Invalid credentials"


class Unauthenticated(ApiError):
    status_code = 401
    message = "Auth failed"


class Forbidden(ApiError):
    status_code = 403
    message = "You need additional permissions to perform this action."


class NotFound(ApiError):
    status_code = 404
    message = "Not found."


class StorageError(ApiError):
    status_code = 500
    message = "We could not complete the request. Please try again."
