"""Services for the ad report summarizer."""

from ad_report_summarizer.services.kpi_extractor import (
    ExtractionResult,
    KpiRecord,
    extract_kpis,
)
from ad_report_summarizer.services.quality_gate import check_extraction_quality
from ad_report_summarizer.services.summary_generator import AiContext, SummaryGenerator
from ad_report_summarizer.services.workbook_loader import WorkbookLoader

__all__ = [
    "AiContext",
    "ExtractionResult",
    "KpiRecord",
    "SummaryGenerator",
    "WorkbookLoader",
    "check_extraction_quality",
    "extract_kpis",
]
