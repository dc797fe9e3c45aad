"""
Service Exceptions

Exception classes shared by the glossary, compilation, LLM and settings
services. Kept in a leaf module so every layer can import them without
circular imports.
"""


class ServiceError(Exception):
    """Service error with optional code and details."""

    default_code = "service_error"

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidDataError(ServiceError):
    """Input rejected before anything was written."""

    default_code = "invalid_data"


class NotFoundError(ServiceError):
    default_code = "not_found"


class AlreadyExistsError(ServiceError):
    default_code = "already_exists"


class FileFormatError(ServiceError):
    """Import or export file could not be read or written."""

    default_code = "file_error"
