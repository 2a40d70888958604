from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_REF = "INVALID_REF"
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    URL_NOT_ALLOWED = "URL_NOT_ALLOWED"
    SHA_CHECK_FAILED = "SHA_CHECK_FAILED"
    ARCHIVE_FETCH_FAILED = "ARCHIVE_FETCH_FAILED"
    BASELINE_UNAVAILABLE = "BASELINE_UNAVAILABLE"


class CanonKitError(Exception):
    """Raised for all expected failure conditions.

    Caught by server.py and serialised into the MCP error response. Read
    paths that can degrade (baseline fetches during search) catch it at the
    handler and record the cause instead of failing the request.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }


class InvariantViolation(RuntimeError):
    """An internal consistency check failed.

    Indicates a caching bug rather than a normal failure, so it is never
    converted into a structured tool error.
    """
