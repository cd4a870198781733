"""Shared exceptions for the chat relay service."""
from typing import Any, Dict, Optional


class ChatRelayException(Exception):
    """Base exception for the chat relay service."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ChatRelayException):
    """Raised when a required field is missing or malformed."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class NotFoundError(ChatRelayException):
    """Raised when a resource is not found."""

    status_code = 404

    def __init__(self, resource: str, identifier: str):
        message = f"{resource} with identifier '{identifier}' not found"
        super().__init__(
            message, "NOT_FOUND", {"resource": resource, "identifier": identifier}
        )


class StorageUnavailableError(ChatRelayException):
    """Raised when the backing key/value store cannot be read or written."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "STORAGE_ERROR", details)


class ModelUnavailableError(ChatRelayException):
    """Raised when the language model call fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Language model error: {message}", "MODEL_ERROR", details)
