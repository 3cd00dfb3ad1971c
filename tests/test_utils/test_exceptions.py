"""Tests for the centralized exception classes."""

from ad_report_summarizer.utils.exceptions import (
    STALE_WORKBOOK_MESSAGE,
    ApiKeyNotConfiguredError,
    DomainNotAllowedError,
    ErrorCode,
    ExtractionError,
    FileError,
    FileTooLargeError,
    InvalidTokenError,
    KeyIssuanceError,
    LLMConfigurationError,
    LLMError,
    MissingTokenError,
    NoExtractionError,
    RecordNotFoundError,
    ReportError,
    SessionExpiredError,
    SessionNotFoundError,
    StaleSummaryError,
    StaleWorkbookError,
    UnsupportedFormatError,
    ValidationError,
    WorkbookParseError,
)


class TestErrorCode:
    """Tests for ErrorCode enumeration."""

    def test_error_codes_are_unique(self) -> None:
        """All error codes should have unique values."""
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))

    def test_error_code_format(self) -> None:
        """Error codes should follow Exxxx format."""
        for code in ErrorCode:
            assert code.value.startswith("E")
            assert len(code.value) == 5
            assert code.value[1:].isdigit()

    def test_authorization_errors_start_with_e6(self) -> None:
        auth_codes = [
            ErrorCode.MISSING_TOKEN,
            ErrorCode.INVALID_TOKEN,
            ErrorCode.DOMAIN_NOT_ALLOWED,
            ErrorCode.API_KEY_NOT_CONFIGURED,
        ]
        for code in auth_codes:
            assert code.value.startswith("E6")


class TestReportError:
    """Tests for base ReportError class."""

    def test_basic_initialization(self) -> None:
        error = ReportError("Test error message")
        assert str(error) == "[E9001] Test error message"
        assert error.message == "Test error message"
        assert error.error_code == ErrorCode.INTERNAL_ERROR
        assert error.details == {}
        assert error.http_status == 500

    def test_to_dict(self) -> None:
        error = ReportError(
            "Test error",
            error_code=ErrorCode.FILE_READ_ERROR,
            details={"filename": "report.xlsx"},
        )
        result = error.to_dict()
        assert result["error_code"] == "E1004"
        assert result["message"] == "Test error"
        assert result["details"]["filename"] == "report.xlsx"

    def test_to_dict_without_details(self) -> None:
        result = ReportError("Test error").to_dict()
        assert "details" not in result

    def test_get_http_status(self) -> None:
        assert ReportError("Test").get_http_status() == 500


class TestFileErrors:
    """Tests for upload-related exceptions."""

    def test_file_too_large_error(self) -> None:
        error = FileTooLargeError(file_size=20_000_000, max_size=10_000_000)
        assert isinstance(error, FileError)
        assert error.error_code == ErrorCode.FILE_TOO_LARGE
        assert error.http_status == 413
        assert error.details["file_size_bytes"] == 20_000_000
        assert error.details["max_size_bytes"] == 10_000_000

    def test_unsupported_format_error(self) -> None:
        error = UnsupportedFormatError(filename="report.csv", detected_format=".csv")
        assert error.http_status == 415
        assert error.filename == "report.csv"
        assert error.details["detected_format"] == ".csv"
        assert error.details["supported_formats"] == [".xlsx"]

    def test_workbook_parse_error_default_message(self) -> None:
        """Parse failures surface the generic load-failure text."""
        error = WorkbookParseError(filename="broken.xlsx")
        assert error.message == "ファイル読み込み失敗"
        assert error.error_code == ErrorCode.WORKBOOK_PARSE_ERROR
        assert error.http_status == 400


class TestSessionErrors:
    """Tests for session-related exceptions."""

    def test_session_not_found(self) -> None:
        error = SessionNotFoundError("abc")
        assert error.http_status == 404
        assert error.session_id == "abc"
        assert error.details["session_id"] == "abc"
        assert "abc" in str(error)

    def test_session_expired(self) -> None:
        error = SessionExpiredError("abc")
        assert error.http_status == 410
        assert error.error_code == ErrorCode.SESSION_EXPIRED

    def test_no_extraction(self) -> None:
        assert NoExtractionError("abc").http_status == 409

    def test_stale_summary_carries_revisions(self) -> None:
        error = StaleSummaryError("abc", ticket_revision=1, current_revision=2)
        assert error.http_status == 409
        assert error.details == {
            "session_id": "abc",
            "ticket_revision": 1,
            "current_revision": 2,
        }

    def test_record_not_found(self) -> None:
        error = RecordNotFoundError("Preset", "p-1")
        assert error.http_status == 404
        assert error.message == "Preset not found: p-1"


class TestExtractionErrors:
    """Tests for extraction-related exceptions."""

    def test_extraction_error_stage(self) -> None:
        error = ExtractionError("Extraction failed", stage="kpi")
        assert error.stage == "kpi"
        assert error.details["stage"] == "kpi"
        assert error.error_code == ErrorCode.EXTRACTION_FAILED

    def test_stale_workbook_error(self) -> None:
        error = StaleWorkbookError(
            missing_fields=["achievement", "total_conversions"], threshold=2
        )
        assert isinstance(error, ExtractionError)
        assert error.http_status == 422
        assert error.message == STALE_WORKBOOK_MESSAGE
        assert "上書き保存" in error.message
        assert error.details["title"] == "データの読み取り失敗"
        assert error.details["missing_count"] == 2
        assert error.details["stage"] == "quality_gate"


class TestLLMErrors:
    """Tests for text-generation exceptions."""

    def test_llm_error_upstream_status(self) -> None:
        error = LLMError("API Error: 503", model="gemini-2.5-flash", status_code=503)
        assert error.http_status == 502
        assert error.details == {"model": "gemini-2.5-flash", "upstream_status": 503}

    def test_llm_configuration_error(self) -> None:
        error = LLMConfigurationError()
        assert isinstance(error, LLMError)
        assert error.http_status == 401
        assert error.error_code == ErrorCode.LLM_NOT_CONFIGURED


class TestKeyIssuanceErrors:
    """Tests for key-issuance exceptions and their status codes."""

    def test_messages_and_statuses(self) -> None:
        cases = [
            (MissingTokenError(), 400, "Missing ID Token"),
            (InvalidTokenError(), 401, "Invalid Token"),
            (
                DomainNotAllowedError("mi-rai.co.jp", "example.com"),
                403,
                "Access restricted to mi-rai.co.jp accounts.",
            ),
            (ApiKeyNotConfiguredError(), 500, "API Key not configured on server."),
        ]
        for error, status, message in cases:
            assert isinstance(error, KeyIssuanceError)
            assert error.http_status == status
            assert error.message == message

    def test_domain_error_records_hosted_domain(self) -> None:
        error = DomainNotAllowedError("mi-rai.co.jp", None)
        assert error.hosted_domain is None
        assert error.details["hosted_domain"] is None


class TestValidationError:
    def test_field_in_details(self) -> None:
        error = ValidationError("Name must not be empty", field="name")
        assert error.http_status == 400
        assert error.error_code == ErrorCode.INVALID_INPUT
        assert error.details["field"] == "name"
