"""
Custom exceptions for the popmix modeling engines.

This module provides specific exception types so callers can tell
bad input apart from bad configuration.
"""


class PopMixError(Exception):
    """Base exception for popmix errors."""
    
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}


class InvalidInputError(PopMixError):
    """Raised when vectors, datasets or model orders are unusable."""
    pass


class ConfigurationError(PopMixError):
    """Raised when configuration is invalid."""
    pass


class FileFormatError(InvalidInputError):
    """Raised when a profile file cannot be parsed."""
    pass
