"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from src.core.exceptions import (
    ApplicationException,
    DomainException,
    ValidationException,
    AuthorizationException,
    ResourceNotFoundException,
    InvalidReferenceException,
    InvalidTransitionException,
    ConfigurationException,
    PersistenceException,
    ExternalServiceException,
    LLMException,
    StorageException,
    UploadException,
    ClassificationException,
    ClassificationParseError,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "ValidationException",
    "AuthorizationException",
    "ResourceNotFoundException",
    "InvalidReferenceException",
    "InvalidTransitionException",
    "ConfigurationException",
    "PersistenceException",
    "ExternalServiceException",
    "LLMException",
    "StorageException",
    "UploadException",
    "ClassificationException",
    "ClassificationParseError",
]
