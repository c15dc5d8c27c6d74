"""
Custom exceptions for the balancete analyzer.

Provides a hierarchy of exceptions with error codes for consistent error handling.
The analysis core never raises for bad input data; these are raised either at
initialization (configuration) or by the collaborator that feeds the core.
"""
from typing import Any, Dict, List, Optional


class BalanceteError(Exception):
    """
    Base exception for all balancete analyzer errors.

    Attributes:
        error_code: Unique error code (e.g., BXL-001)
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "BXL-000"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for CLI/API output."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# Initialization Errors (BXL-0XX)
class ConfigurationError(BalanceteError):
    """Configuration violates a startup contract."""
    error_code = "BXL-001"

    def __init__(self, message: str = "Invalid configuration", **kwargs):
        super().__init__(message, **kwargs)


# Document Boundary Errors (BXL-1XX)
class DocumentProcessingError(BalanceteError):
    """Error while preparing documents for analysis."""
    error_code = "BXL-100"

    def __init__(self, message: str = "Failed to process document", **kwargs):
        super().__init__(message, **kwargs)


class InvalidFileTypeError(DocumentProcessingError):
    """Input is not an extracted text document."""
    error_code = "BXL-101"

    def __init__(self, filename: str, expected_types: List[str], **kwargs):
        message = f"Invalid file type. Expected: {', '.join(expected_types)}"
        super().__init__(
            message,
            details={"filename": filename, "expected_types": expected_types},
            **kwargs,
        )


class InsufficientDocumentsError(DocumentProcessingError):
    """Too few (or too many) documents submitted for a comparison."""
    error_code = "BXL-102"

    def __init__(self, count: int, minimum: int, maximum: int, **kwargs):
        message = f"Submit between {minimum} and {maximum} documents (got {count})"
        super().__init__(
            message,
            details={"count": count, "minimum": minimum, "maximum": maximum},
            **kwargs,
        )


class DocumentReadError(DocumentProcessingError):
    """Document could not be read."""
    error_code = "BXL-103"

    def __init__(self, filename: str, reason: str, **kwargs):
        message = f"Could not read {filename}"
        super().__init__(message, details={"filename": filename, "reason": reason}, **kwargs)
