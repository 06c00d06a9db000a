"""Exceptions raised by the safety analytics core and mapped to HTTP responses in the API layer."""


class SafetyAnalyticsError(Exception):
    """Base error carrying a machine-readable reason and a human-readable message."""

    status_code = 500
    reason = "internal_error"

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.message = message
        if reason:
            self.reason = reason

    def to_dict(self) -> dict:
        return {"error": self.reason, "message": self.message}


class ValidationRejected(SafetyAnalyticsError):
    status_code = 400
    reason = "invalid_request"


class MissingFields(ValidationRejected):
    reason = "missing_fields"

    def __init__(self, required: list[str]):
        super().__init__(f"Missing required fields: {', '.join(required)}")
        self.required = required

    def to_dict(self) -> dict:
        return {**super().to_dict(), "required": self.required}


class InvalidCoordinates(ValidationRejected):
    reason = "invalid_coordinates"


class UserNotFound(SafetyAnalyticsError):
    status_code = 404
    reason = "user_not_found"

    def __init__(self, username: str):
        super().__init__(f"No location registered for user '{username}'")
        self.username = username


class DatasetLoadError(SafetyAnalyticsError):
    """The crime data source exists but could not be read."""

    reason = "dataset_unavailable"
