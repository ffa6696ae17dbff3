"""
Core Exceptions
================

Custom exceptions for the triage pipeline following clean architecture principles.

Every exception carries a ``retryable`` flag so callers can tell input
problems (fix and resubmit) from infrastructure problems (retry later).
Mapping to transport status codes happens at the API boundary.
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    retryable: bool = False

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class ValidationException(ApplicationException):
    """A required submission field is missing, empty or malformed."""


class AuthorizationException(ApplicationException):
    """The actor is not allowed to perform the operation."""

    def __init__(self, action: str, actor_id: Optional[str] = None):
        self.action = action
        self.actor_id = actor_id
        super().__init__(
            f"Actor is not authorized to {action}",
            {"action": action, "actor_id": actor_id}
        )


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details or {"resource_type": resource_type, "resource_id": resource_id})


class InvalidReferenceException(ApplicationException):
    """An operation referenced reference data that does not exist."""

    def __init__(self, resource_type: str, resource_id: Any):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"Unknown {resource_type.lower()} '{resource_id}'",
            {"resource_type": resource_type, "resource_id": resource_id}
        )


class InvalidTransitionException(DomainException):
    """Status change rejected by the forward-only workflow policy."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move issue from '{current}' to '{target}'",
            {"current": current, "target": target}
        )


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class PersistenceException(ApplicationException):
    """The issue store could not read or commit a record."""

    retryable = True


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    retryable = True

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Exception for model API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class StorageException(ExternalServiceException):
    """Exception for image storage failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Image Storage", message, details)


class UploadException(ApplicationException):
    """Persisting the submitted image failed; the submission is aborted."""

    retryable = True


class ClassificationException(DomainException):
    """
    Internal classification failure.

    Never leaves the classifier: it is always downgraded to the
    fallback category and logged.
    """


class ClassificationParseError(ClassificationException):
    """The model reply contained neither a category nor a confidence marker."""

    def __init__(self, raw_text: str):
        self.raw_text = raw_text
        super().__init__(
            "Model reply did not match the expected format",
            {"raw_preview": raw_text[:200]}
        )
