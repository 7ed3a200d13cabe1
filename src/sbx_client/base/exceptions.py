from typing import Optional


class SBXException(Exception):
    """Base exception for errors raised by the SBX client."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


class TransportError(SBXException):
    """Raised by a transport when a request cannot produce a JSON payload."""

    def __init__(
        self,
        message: str = "Transport request failed.",
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.status_code = status_code


class ModelRegistrationError(ValueError):
    """Raised when a type is used as an SBX model but declares no model name."""

    def __init__(self, message: str = "Type does not declare an SBX model name."):
        super().__init__(message)


class ObjectNotFoundException(Exception):
    """Exception raised when an object with the specified key does not exist."""

    def __init__(self, message: str = "The requested object was not found."):
        super().__init__(message)


class SbxRepositoryException(SBXException):
    """Raised when a repository write is rejected by the server."""
