"""Ad Report Summarizer - KPI extraction and client summaries for ad reports."""

from ad_report_summarizer.api import app, create_app

__all__ = ["app", "create_app"]
__version__ = "0.1.0"


def main() -> None:
    """Run the FastAPI server using uvicorn."""
    import uvicorn

    from ad_report_summarizer.config import settings

    uvicorn.run(
        "ad_report_summarizer.api:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
    )
