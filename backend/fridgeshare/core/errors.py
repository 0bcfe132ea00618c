class FridgeShareError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail)
        self.detail = detail


class ValidationFailed(FridgeShareError):
    status_code = 400


class Unauthorized(FridgeShareError):
    status_code = 401


class Forbidden(FridgeShareError):
    status_code = 403


class NotFound(FridgeShareError):
    status_code = 404


class Conflict(FridgeShareError):
    """The record is not in the state the operation requires."""

    status_code = 409


class ExternalServiceError(FridgeShareError):
    """Mail, AI or payment provider call failed or is not configured."""

    status_code = 502
