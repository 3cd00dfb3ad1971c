"""Centralized exception classes for the ad report summarizer.

This module provides a hierarchy of custom exceptions with error codes,
HTTP status code mapping, and structured error details for consistent
error handling throughout the application.

Exception Hierarchy:
    ReportError (base)
    ├── FileError
    │   ├── FileTooLargeError
    │   ├── UnsupportedFormatError
    │   └── WorkbookParseError
    ├── SessionError
    │   ├── SessionNotFoundError
    │   ├── SessionExpiredError
    │   ├── NoExtractionError
    │   └── StaleSummaryError
    ├── RecordNotFoundError
    ├── ExtractionError
    │   └── StaleWorkbookError
    ├── LLMError
    │   └── LLMConfigurationError
    ├── KeyIssuanceError
    │   ├── MissingTokenError
    │   ├── InvalidTokenError
    │   ├── DomainNotAllowedError
    │   └── ApiKeyNotConfiguredError
    └── ValidationError

Error Codes:
    All errors have a unique error code (e.g., "E1001") that can be used
    for programmatic error handling and documentation.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used in the application.

    Error codes are grouped by category:
    - E1xxx: File/workbook errors
    - E2xxx: Session and record store errors
    - E4xxx: Extraction errors
    - E5xxx: External service errors
    - E6xxx: Authorization errors
    - E9xxx: Internal/unexpected errors
    """

    # File errors (E1xxx)
    FILE_TOO_LARGE = "E1002"
    UNSUPPORTED_FORMAT = "E1003"
    FILE_READ_ERROR = "E1004"
    WORKBOOK_PARSE_ERROR = "E1007"

    # Session / store errors (E2xxx)
    SESSION_NOT_FOUND = "E2001"
    SESSION_EXPIRED = "E2002"
    NO_EXTRACTION = "E2003"
    STALE_SUMMARY = "E2004"
    RECORD_NOT_FOUND = "E2005"
    INVALID_INPUT = "E2006"

    # Extraction errors (E4xxx)
    EXTRACTION_FAILED = "E4001"
    STALE_WORKBOOK = "E4009"

    # External service errors (E5xxx)
    LLM_API_ERROR = "E5001"
    LLM_NOT_CONFIGURED = "E5005"

    # Authorization errors (E6xxx)
    MISSING_TOKEN = "E6001"
    INVALID_TOKEN = "E6002"
    DOMAIN_NOT_ALLOWED = "E6003"
    API_KEY_NOT_CONFIGURED = "E6004"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"
    UNEXPECTED_ERROR = "E9999"


class HTTPStatusMixin:
    """Mixin that provides HTTP status code for exceptions.

    Subclasses should set the `http_status` class attribute.
    """

    http_status: int = 500

    def get_http_status(self) -> int:
        """Get the HTTP status code for this exception."""
        return self.http_status


class ReportError(Exception, HTTPStatusMixin):
    """Base exception for all ad report summarizer errors.

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Optional dictionary with additional error details.
        http_status: HTTP status code for API responses (default 500).
    """

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for API responses."""
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# File Errors (E1xxx)
# =============================================================================


class FileError(ReportError):
    """Base class for uploaded-file errors."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FILE_READ_ERROR,
        filename: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with file name information.

        Args:
            message: Error message.
            error_code: Error code.
            filename: Name of the problematic file.
            details: Additional details.
        """
        details = details or {}
        if filename:
            details["filename"] = filename
        super().__init__(message, error_code, details)
        self.filename = filename


class FileTooLargeError(FileError):
    """Raised when an upload exceeds the maximum allowed size."""

    http_status: int = 413

    def __init__(
        self,
        file_size: int,
        max_size: int,
        filename: str | None = None,
    ) -> None:
        details = {"file_size_bytes": file_size, "max_size_bytes": max_size}
        message = (
            f"File size ({file_size} bytes) exceeds maximum "
            f"allowed size ({max_size} bytes)"
        )
        super().__init__(
            message=message,
            error_code=ErrorCode.FILE_TOO_LARGE,
            filename=filename,
            details=details,
        )


class UnsupportedFormatError(FileError):
    """Raised when the uploaded file is not an .xlsx workbook."""

    http_status: int = 415

    def __init__(
        self,
        filename: str | None = None,
        detected_format: str | None = None,
    ) -> None:
        details: dict[str, Any] = {"supported_formats": [".xlsx"]}
        if detected_format:
            details["detected_format"] = detected_format
        super().__init__(
            message="Only .xlsx workbooks are supported",
            error_code=ErrorCode.UNSUPPORTED_FORMAT,
            filename=filename,
            details=details,
        )


class WorkbookParseError(FileError):
    """Raised when an uploaded workbook cannot be read at all."""

    http_status: int = 400

    def __init__(
        self,
        message: str = "ファイル読み込み失敗",
        filename: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.WORKBOOK_PARSE_ERROR,
            filename=filename,
            details=details,
        )


# =============================================================================
# Session / Store Errors (E2xxx)
# =============================================================================


class SessionError(ReportError):
    """Base class for report session errors."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SESSION_NOT_FOUND,
        session_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if session_id:
            details["session_id"] = session_id
        super().__init__(message, error_code, details)
        self.session_id = session_id


class SessionNotFoundError(SessionError):
    """Raised when a report session does not exist."""

    http_status: int = 404

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Session not found: {session_id}",
            error_code=ErrorCode.SESSION_NOT_FOUND,
            session_id=session_id,
        )


class SessionExpiredError(SessionError):
    """Raised when a report session has outlived its TTL."""

    http_status: int = 410

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Session has expired: {session_id}",
            error_code=ErrorCode.SESSION_EXPIRED,
            session_id=session_id,
        )


class NoExtractionError(SessionError):
    """Raised when a summary is requested without a trusted extraction."""

    http_status: int = 409

    def __init__(self, session_id: str | None = None) -> None:
        super().__init__(
            message="No trusted KPI extraction is available; upload a workbook first",
            error_code=ErrorCode.NO_EXTRACTION,
            session_id=session_id,
        )


class StaleSummaryError(SessionError):
    """Raised when a summary finished after its extraction was replaced."""

    http_status: int = 409

    def __init__(
        self,
        session_id: str | None = None,
        ticket_revision: int | None = None,
        current_revision: int | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if ticket_revision is not None:
            details["ticket_revision"] = ticket_revision
        if current_revision is not None:
            details["current_revision"] = current_revision
        super().__init__(
            message="The workbook changed while the summary was being generated",
            error_code=ErrorCode.STALE_SUMMARY,
            session_id=session_id,
            details=details,
        )


class RecordNotFoundError(ReportError):
    """Raised when a customer or preset record does not exist."""

    http_status: int = 404

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(
            message=f"{kind} not found: {record_id}",
            error_code=ErrorCode.RECORD_NOT_FOUND,
            details={"kind": kind, "id": record_id},
        )
        self.kind = kind
        self.record_id = record_id


# =============================================================================
# Extraction Errors (E4xxx)
# =============================================================================


class ExtractionError(ReportError):
    """Base class for KPI extraction errors."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTRACTION_FAILED,
        stage: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with stage information.

        Args:
            message: Error message.
            error_code: Error code.
            stage: The extraction stage that failed.
            details: Additional details.
        """
        details = details or {}
        if stage:
            details["stage"] = stage
        super().__init__(message, error_code, details)
        self.stage = stage


STALE_WORKBOOK_MESSAGE = (
    "エクセルファイルから数値を読み取ることができませんでした。"
    "システムからダウンロードした直後のファイルは計算結果が保持されていない場合があります。"
    "一度「上書き保存」してから、再度ファイルを選択してください。"
)


class StaleWorkbookError(ExtractionError):
    """Raised when too many essential KPIs are missing from a workbook.

    The usual cause is a freshly downloaded workbook whose formulas were
    never recalculated and saved, so no cached values are present.
    """

    http_status: int = 422

    def __init__(
        self,
        missing_fields: list[str],
        threshold: int,
        message: str = STALE_WORKBOOK_MESSAGE,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.STALE_WORKBOOK,
            stage="quality_gate",
            details={
                "title": "データの読み取り失敗",
                "missing_fields": missing_fields,
                "missing_count": len(missing_fields),
                "threshold": threshold,
            },
        )
        self.missing_fields = missing_fields
        self.threshold = threshold


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(ReportError):
    """General validation error for input data."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_INPUT,
            details=details,
        )


# =============================================================================
# External Service Errors (E5xxx)
# =============================================================================


class LLMError(ReportError):
    """Base class for text-generation service errors."""

    http_status: int = 502

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.LLM_API_ERROR,
        model: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with model information.

        Args:
            message: Error message.
            error_code: Error code.
            model: The model that produced the error.
            status_code: Upstream HTTP status, when there was a response.
            details: Additional details.
        """
        details = details or {}
        if model:
            details["model"] = model
        if status_code is not None:
            details["upstream_status"] = status_code
        super().__init__(message, error_code, details)
        self.model = model
        self.status_code = status_code


class LLMConfigurationError(LLMError):
    """Raised when no API key is available for the text-generation service."""

    http_status: int = 401

    def __init__(
        self,
        message: str = "APIキーが設定されていません。ログインしてください。",
        model: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.LLM_NOT_CONFIGURED,
            model=model,
        )


# =============================================================================
# Authorization Errors (E6xxx)
# =============================================================================


class KeyIssuanceError(ReportError):
    """Base class for failures at the key-issuance boundary.

    These are rendered as ``{"error": message}`` rather than the usual
    error detail envelope.
    """

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code, details)


class MissingTokenError(KeyIssuanceError):
    """Raised when the request carries no identity token."""

    http_status: int = 400

    def __init__(self) -> None:
        super().__init__("Missing ID Token", ErrorCode.MISSING_TOKEN)


class InvalidTokenError(KeyIssuanceError):
    """Raised when the identity provider rejects the token."""

    http_status: int = 401

    def __init__(self, details: dict[str, Any] | None = None) -> None:
        super().__init__("Invalid Token", ErrorCode.INVALID_TOKEN, details)


class DomainNotAllowedError(KeyIssuanceError):
    """Raised when the token's hosted domain is not the authorized one."""

    http_status: int = 403

    def __init__(self, authorized_domain: str, hosted_domain: str | None) -> None:
        super().__init__(
            f"Access restricted to {authorized_domain} accounts.",
            ErrorCode.DOMAIN_NOT_ALLOWED,
            {"hosted_domain": hosted_domain},
        )
        self.authorized_domain = authorized_domain
        self.hosted_domain = hosted_domain


class ApiKeyNotConfiguredError(KeyIssuanceError):
    """Raised when the server holds no secret key to hand out."""

    http_status: int = 500

    def __init__(self) -> None:
        super().__init__(
            "API Key not configured on server.",
            ErrorCode.API_KEY_NOT_CONFIGURED,
        )
