"""FastAPI application for the ad report summarizer."""

import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import FastAPI, File, Header, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ad_report_summarizer.config import settings, validate_settings_on_startup
from ad_report_summarizer.models import (
    ActiveSheetRequest,
    ApiKeyRequest,
    ApiKeyResponse,
    ContextUpdateRequest,
    CustomerCreate,
    CustomerResponse,
    ErrorDetail,
    HealthResponse,
    PresetCreate,
    PresetResponse,
    PresetUpdate,
    ReorderRequest,
    SessionResponse,
    SheetPreviewResponse,
    SummaryResponse,
)
from ad_report_summarizer.services.key_issuer import KeyIssuer
from ad_report_summarizer.services.kpi_extractor import extract_kpis
from ad_report_summarizer.services.preset_store import PresetStore
from ad_report_summarizer.services.quality_gate import check_extraction_quality
from ad_report_summarizer.services.session_manager import (
    SessionManager,
    apply_summary,
    begin_summary,
    load_extraction,
    reject_extraction,
    reset_workbook,
    with_active_sheet,
    with_context,
)
from ad_report_summarizer.services.summary_generator import SummaryGenerator
from ad_report_summarizer.services.workbook_loader import (
    WorkbookLoader,
    sheet_preview,
)
from ad_report_summarizer.utils.exceptions import (
    ErrorCode,
    FileError,
    KeyIssuanceError,
    LLMConfigurationError,
    NoExtractionError,
    RecordNotFoundError,
    ReportError,
    StaleSummaryError,
    StaleWorkbookError,
    ValidationError,
    WorkbookParseError,
)
from ad_report_summarizer.utils.logging import (
    LogContext,
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)
from ad_report_summarizer.workbook import resolve_sheet

# Configure structured logging using settings
configure_logging(
    level=settings.log_level_int,
    use_structured_formatter=True,
)
logger = get_logger(__name__)

KEY_ROUTE_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def create_app(
    summary_generator: SummaryGenerator | None = None,
    key_issuer: KeyIssuer | None = None,
    preset_store: PresetStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        summary_generator: Generator used for summaries. Defaults to one
            built from settings.
        key_issuer: Key issuer for ``/auth/api-key``. Defaults to settings.
        preset_store: Customer and preset store. Defaults to an empty store.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        app.state.session_manager = SessionManager()
        try:
            yield
        finally:
            app.state.session_manager.stop_cleanup()
            app.state.session_manager.clear_all()

    app = FastAPI(
        title="Ad Report Summarizer API",
        description=(
            "Extracts KPIs from advertising report workbooks, rejects workbooks "
            "without cached values and drafts a three-line client summary."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.summary_generator = summary_generator or SummaryGenerator()
    app.state.key_issuer = key_issuer or KeyIssuer()
    app.state.preset_store = preset_store or PresetStore()
    app.state.workbook_loader = WorkbookLoader()

    # Configure CORS using settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Validate settings on startup
    validate_settings_on_startup(settings)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Any:
        """Assign a request ID, expose it in logs and echo it in the response."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        set_request_id(request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()

    @app.exception_handler(KeyIssuanceError)
    async def key_issuance_exception_handler(
        request: Request, exc: KeyIssuanceError
    ) -> JSONResponse:
        """Key-issuance failures use a bare ``{"error": ...}`` body."""
        logger.warning(
            f"Key issuance refused: {exc.message}",
            error_code=exc.error_code.value,
            http_status=exc.http_status,
        )
        return JSONResponse(status_code=exc.http_status, content={"error": exc.message})

    @app.exception_handler(ReportError)
    async def report_exception_handler(
        request: Request, exc: ReportError
    ) -> JSONResponse:
        """Render application exceptions as structured error responses."""
        request_id = getattr(request.state, "request_id", get_request_id())
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            f"Report Error: {exc.message}",
            error_code=exc.error_code.value,
            http_status=exc.http_status,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=ErrorDetail(
                detail=exc.message,
                error_code=exc.error_code.value,
                details=exc.details if exc.details else None,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        """Custom exception handler for HTTP exceptions."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.warning(
            f"HTTP Error: {exc.detail}",
            status_code=exc.status_code,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                detail=str(exc.detail),
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all exception handler for unexpected errors.

        Logs the full exception and returns a generic error response
        to avoid leaking internal details.
        """
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.exception(
            f"Unexpected error: {type(exc).__name__}",
            error_type=type(exc).__name__,
        )
        if settings.debug:
            detail = f"Internal server error: {type(exc).__name__}: {exc}"
        else:
            detail = "Internal server error. Please try again later."

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorDetail(
                detail=detail,
                error_code=ErrorCode.INTERNAL_ERROR.value,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request) -> dict[str, Any]:
        """Check the health status of the service."""
        request_id = getattr(request.state, "request_id", None)
        logger.debug("Health check requested", request_id=request_id)
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": "0.1.0",
        }

    # ------------------------------------------------------------------ #
    # Key issuance
    # ------------------------------------------------------------------ #

    @app.api_route(
        "/auth/api-key",
        methods=KEY_ROUTE_METHODS,
        response_model=ApiKeyResponse,
        response_model_by_alias=True,
        tags=["Auth"],
    )
    async def issue_api_key(request: Request) -> Response:
        """Exchange a Google ID token from the authorized domain for the API key.

        Only POST is accepted; every other method gets a plain-text 405.
        Unexpected failures, including a body that is not valid JSON, are
        reported as ``{"error": ...}`` with status 500.
        """
        if request.method != "POST":
            return PlainTextResponse("Method Not Allowed", status_code=405)

        issuer: KeyIssuer = request.app.state.key_issuer
        try:
            body = ApiKeyRequest.model_validate(await request.json())
            api_key = await issuer.issue(body.id_token)
        except KeyIssuanceError:
            raise
        except Exception as e:
            logger.exception("Key issuance failed", error_type=type(e).__name__)
            return JSONResponse(status_code=500, content={"error": str(e)})

        return JSONResponse(
            content=ApiKeyResponse(api_key=api_key).model_dump(by_alias=True)
        )

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    def session_manager(request: Request) -> SessionManager:
        return request.app.state.session_manager

    @app.post(
        "/sessions",
        response_model=SessionResponse,
        status_code=status.HTTP_201_CREATED,
        tags=["Sessions"],
    )
    async def create_session(request: Request) -> SessionResponse:
        """Open a new report session with no workbook and the default context."""
        session = session_manager(request).create(str(uuid.uuid4()))
        return SessionResponse.from_session(session)

    @app.get(
        "/sessions/{session_id}",
        response_model=SessionResponse,
        tags=["Sessions"],
        responses={
            404: {"model": ErrorDetail, "description": "Session not found"},
            410: {"model": ErrorDetail, "description": "Session expired"},
        },
    )
    async def get_session(request: Request, session_id: str) -> SessionResponse:
        return SessionResponse.from_session(session_manager(request).get(session_id))

    @app.put(
        "/sessions/{session_id}/workbook",
        response_model=SessionResponse,
        tags=["Sessions"],
        responses={
            400: {"model": ErrorDetail, "description": "Workbook could not be read"},
            413: {"model": ErrorDetail, "description": "File too large"},
            415: {"model": ErrorDetail, "description": "Not an .xlsx workbook"},
            422: {"model": ErrorDetail, "description": "Workbook has no cached values"},
        },
    )
    async def upload_workbook(
        request: Request,
        session_id: str,
        file: Annotated[UploadFile, File(description="Report workbook (.xlsx)")],
    ) -> SessionResponse:
        """Load a workbook into the session and extract its KPIs.

        Loading replaces the previous workbook, record, log and summary. A
        workbook failing the quality gate stays viewable but carries no
        record, so no summary can be generated from it.
        """
        manager = session_manager(request)
        manager.get(session_id)

        filename = file.filename or ""
        if not filename:
            raise ValidationError("A workbook file must be provided", field="file")
        data = await file.read()

        with LogContext(session_id=session_id):
            session = manager.get(session_id)
            try:
                workbook = request.app.state.workbook_loader.load_bytes(data, filename)
                extraction = extract_kpis(workbook)
            except FileError as e:
                manager.put(reject_extraction(session, None, filename, e.message))
                raise
            except Exception:
                manager.put(
                    reject_extraction(session, None, filename, WorkbookParseError().message)
                )
                raise

            try:
                quality = check_extraction_quality(extraction.record)
            except StaleWorkbookError as e:
                manager.put(
                    reject_extraction(
                        session,
                        workbook,
                        filename,
                        e.message,
                        active_sheet=extraction.summary_sheet,
                    )
                )
                raise

            session = manager.put(
                load_extraction(session, workbook, filename, extraction, quality)
            )
            logger.info("Workbook loaded", filename=filename, revision=session.revision)
        return SessionResponse.from_session(session)

    @app.delete(
        "/sessions/{session_id}/workbook",
        response_model=SessionResponse,
        tags=["Sessions"],
    )
    async def clear_workbook(request: Request, session_id: str) -> SessionResponse:
        """Drop the workbook and everything derived from it."""
        manager = session_manager(request)
        session = manager.put(reset_workbook(manager.get(session_id)))
        return SessionResponse.from_session(session)

    @app.put(
        "/sessions/{session_id}/active-sheet",
        response_model=SessionResponse,
        tags=["Sessions"],
    )
    async def set_active_sheet(
        request: Request, session_id: str, body: ActiveSheetRequest
    ) -> SessionResponse:
        manager = session_manager(request)
        session = manager.get(session_id)
        if session.workbook is None or session.workbook.get_sheet(body.sheet_name) is None:
            raise RecordNotFoundError("Sheet", body.sheet_name)
        session = manager.put(with_active_sheet(session, body.sheet_name))
        return SessionResponse.from_session(session)

    @app.get(
        "/sessions/{session_id}/sheets/{sheet_name}",
        response_model=SheetPreviewResponse,
        tags=["Sessions"],
    )
    async def preview_sheet(
        request: Request,
        session_id: str,
        sheet_name: str,
        max_rows: int | None = None,
    ) -> SheetPreviewResponse:
        """Display values of one sheet as a grid, for eyeballing the workbook."""
        session = session_manager(request).get(session_id)
        if session.workbook is None:
            raise NoExtractionError(session_id)
        sheet = resolve_sheet(session.workbook, sheet_name)
        if sheet is None:
            raise RecordNotFoundError("Sheet", sheet_name)

        frame = sheet_preview(sheet, max_rows=max_rows)
        first_row = (
            int(frame.index[0]) if not frame.empty else sheet.scan_range.start_row + 1
        )
        return SheetPreviewResponse(
            sheet_name=sheet.name,
            columns=[str(c) for c in frame.columns],
            first_row=first_row,
            rows=frame.values.tolist(),
        )

    @app.put(
        "/sessions/{session_id}/context",
        response_model=SessionResponse,
        tags=["Sessions"],
    )
    async def update_context(
        request: Request, session_id: str, body: ContextUpdateRequest
    ) -> SessionResponse:
        """Set the summary context, or copy it from a saved preset."""
        manager = session_manager(request)
        session = manager.get(session_id)
        if body.preset_id is not None:
            context = request.app.state.preset_store.get_preset(body.preset_id).to_context()
        elif body.context is not None:
            context = body.context.to_context()
        else:
            raise ValidationError(
                "Either 'preset_id' or 'context' must be provided", field="context"
            )
        session = manager.put(with_context(session, context))
        return SessionResponse.from_session(session)

    @app.post(
        "/sessions/{session_id}/summary",
        response_model=SummaryResponse,
        tags=["Sessions"],
        responses={
            401: {"model": ErrorDetail, "description": "No API key supplied"},
            409: {"model": ErrorDetail, "description": "No record, or it changed"},
            502: {"model": ErrorDetail, "description": "Generation failed"},
        },
    )
    async def generate_summary(
        request: Request,
        session_id: str,
        x_api_key: Annotated[str | None, Header()] = None,
    ) -> SummaryResponse:
        """Generate the three-line summary for the session's current record.

        The result is only stored if neither a new workbook nor a newer
        summary request arrived while it was being generated.
        """
        if not x_api_key:
            raise LLMConfigurationError()

        manager = session_manager(request)
        generator: SummaryGenerator = request.app.state.summary_generator

        with LogContext(session_id=session_id):
            session, ticket = begin_summary(manager.get(session_id))
            manager.put(session)
            assert session.extraction is not None

            result = await generator.generate(
                session.extraction.record, session.context, x_api_key
            )

            latest, accepted = apply_summary(manager.get(session_id), ticket, result.text)
            if not accepted:
                raise StaleSummaryError(
                    session_id=session_id,
                    ticket_revision=ticket.revision,
                    current_revision=latest.revision,
                )
            manager.put(latest)

        return SummaryResponse(
            session_id=session_id,
            revision=ticket.revision,
            summary=result.text,
            model_used=result.model,
            attempts=result.attempts,
            processing_time_seconds=result.processing_time_seconds,
        )

    # ------------------------------------------------------------------ #
    # Customers and presets
    # ------------------------------------------------------------------ #

    def preset_store_of(request: Request) -> PresetStore:
        return request.app.state.preset_store

    @app.get("/customers", response_model=list[CustomerResponse], tags=["Presets"])
    async def list_customers(request: Request) -> list[CustomerResponse]:
        return [
            CustomerResponse(id=c.id, name=c.name, sort_order=c.sort_order)
            for c in preset_store_of(request).list_customers()
        ]

    @app.post(
        "/customers",
        response_model=CustomerResponse,
        status_code=status.HTTP_201_CREATED,
        tags=["Presets"],
    )
    async def create_customer(request: Request, body: CustomerCreate) -> CustomerResponse:
        customer = preset_store_of(request).create_customer(body.name)
        return CustomerResponse(
            id=customer.id, name=customer.name, sort_order=customer.sort_order
        )

    @app.put(
        "/customers/order", response_model=list[CustomerResponse], tags=["Presets"]
    )
    async def reorder_customers(
        request: Request, body: ReorderRequest
    ) -> list[CustomerResponse]:
        return [
            CustomerResponse(id=c.id, name=c.name, sort_order=c.sort_order)
            for c in preset_store_of(request).reorder_customers(body.ids)
        ]

    @app.put(
        "/customers/{customer_id}", response_model=CustomerResponse, tags=["Presets"]
    )
    async def rename_customer(
        request: Request, customer_id: str, body: CustomerCreate
    ) -> CustomerResponse:
        customer = preset_store_of(request).rename_customer(customer_id, body.name)
        return CustomerResponse(
            id=customer.id, name=customer.name, sort_order=customer.sort_order
        )

    @app.delete(
        "/customers/{customer_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        tags=["Presets"],
    )
    async def delete_customer(request: Request, customer_id: str) -> Response:
        """Delete a customer and all of its presets."""
        preset_store_of(request).delete_customer(customer_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get(
        "/customers/{customer_id}/presets",
        response_model=list[PresetResponse],
        tags=["Presets"],
    )
    async def list_presets(request: Request, customer_id: str) -> list[PresetResponse]:
        return [
            PresetResponse(**vars(p))
            for p in preset_store_of(request).list_presets(customer_id)
        ]

    @app.post(
        "/customers/{customer_id}/presets",
        response_model=PresetResponse,
        status_code=status.HTTP_201_CREATED,
        tags=["Presets"],
    )
    async def create_preset(
        request: Request, customer_id: str, body: PresetCreate
    ) -> PresetResponse:
        preset = preset_store_of(request).create_preset(
            customer_id, body.name, goal=body.goal, issues=body.issues, tasks=body.tasks
        )
        return PresetResponse(**vars(preset))

    @app.put(
        "/customers/{customer_id}/presets/order",
        response_model=list[PresetResponse],
        tags=["Presets"],
    )
    async def reorder_presets(
        request: Request, customer_id: str, body: ReorderRequest
    ) -> list[PresetResponse]:
        return [
            PresetResponse(**vars(p))
            for p in preset_store_of(request).reorder_presets(customer_id, body.ids)
        ]

    @app.patch(
        "/customers/{customer_id}/presets/{preset_id}",
        response_model=PresetResponse,
        tags=["Presets"],
    )
    async def update_preset(
        request: Request, customer_id: str, preset_id: str, body: PresetUpdate
    ) -> PresetResponse:
        store = preset_store_of(request)
        if store.get_preset(preset_id).customer_id != customer_id:
            raise RecordNotFoundError("Preset", preset_id)
        preset = store.update_preset(
            preset_id,
            name=body.name,
            goal=body.goal,
            issues=body.issues,
            tasks=body.tasks,
        )
        return PresetResponse(**vars(preset))

    @app.delete(
        "/customers/{customer_id}/presets/{preset_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        tags=["Presets"],
    )
    async def delete_preset(
        request: Request, customer_id: str, preset_id: str
    ) -> Response:
        store = preset_store_of(request)
        if store.get_preset(preset_id).customer_id != customer_id:
            raise RecordNotFoundError("Preset", preset_id)
        store.delete_preset(preset_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    logger.info("FastAPI application created successfully")
    return app


# Create the default app instance
app = create_app()
