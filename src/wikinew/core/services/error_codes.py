"""Error codes and exception handling for wikinew.

This module defines the ErrorCode enum and the WikinewError exception class.
Codes fall into two groups: outcome errors, which are attached to a
ScopeViolation or Conflict outcome so the caller's UI can display them, and
operational errors, which the CLI turns into an error envelope and an exit
code.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error code enumeration shared by the resolver and the CLI.

    Categories:
        Outcome: Carried on a non-committing outcome (template scope, conflict)
        Operational: Raised while loading configuration or parsing arguments
    """

    TEMPLATE_NOT_AVAILABLE = "TEMPLATE_NOT_AVAILABLE"
    DOCUMENT_NOT_EMPTY = "DOCUMENT_NOT_EMPTY"
    CONFIG_MISSING = "CONFIG_MISSING"
    CONFIG_INVALID = "CONFIG_INVALID"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class WikinewError(Exception):
    """Base exception for wikinew errors.

    Wraps an ErrorCode with a human-readable message and optional structured
    details for machine-parseable error responses.

    Attributes:
        code: The ErrorCode enum value for this error.
        message: Human-readable error description.
        details: Optional dictionary of additional structured context.

    Example:
        >>> error = WikinewError(
        ...     code=ErrorCode.DOCUMENT_NOT_EMPTY,
        ...     message="Cannot create document xwiki:Main.WebHome because it already has content",
        ...     details={"existing": "xwiki:Main.WebHome"}
        ... )
        >>> error.code
        <ErrorCode.DOCUMENT_NOT_EMPTY: 'DOCUMENT_NOT_EMPTY'>
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize a WikinewError.

        Args:
            code: The ErrorCode enum value identifying this error type.
            message: Human-readable error description.
            details: Optional dictionary of additional structured context
                (e.g., allowed scopes, references, etc.).
        """
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)

    def __repr__(self) -> str:
        """Return a developer-friendly representation of the error."""
        return f"WikinewError(code={self.code.value!r}, message={self.message!r}, details={self.details!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WikinewError):
            return NotImplemented
        return (
            self.code == other.code
            and self.message == other.message
            and self.details == other.details
        )

    __hash__ = Exception.__hash__
