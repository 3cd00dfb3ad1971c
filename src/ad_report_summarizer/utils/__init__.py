"""Utilities package for the ad report summarizer.

This package provides:
- Cell addressing and numeric display helpers (cells.py)
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from ad_report_summarizer.utils.cells import (
    column_index,
    column_label,
    decode_address,
    encode_address,
    is_untrustworthy,
    normalize_numeric_display,
)
from ad_report_summarizer.utils.exceptions import (
    ErrorCode,
    ExtractionError,
    FileError,
    HTTPStatusMixin,
    LLMError,
    ReportError,
    SessionError,
    StaleWorkbookError,
    ValidationError,
)
from ad_report_summarizer.utils.logging import (
    LogContext,
    StructuredLogger,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Cells
    "column_index",
    "column_label",
    "decode_address",
    "encode_address",
    "is_untrustworthy",
    "normalize_numeric_display",
    # Exceptions
    "ErrorCode",
    "ExtractionError",
    "FileError",
    "HTTPStatusMixin",
    "LLMError",
    "ReportError",
    "SessionError",
    "StaleWorkbookError",
    "ValidationError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
