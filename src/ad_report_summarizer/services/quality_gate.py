"""Extraction-quality gate run before any summary is generated.

A single missing KPI is tolerated as noise. When most of the essential
KPIs are missing the workbook almost always comes straight from the ad
platform's export and was never recalculated and saved, so there are no
cached formula values to read. That case is rejected with an actionable
message instead of producing a summary from incomplete data.
"""

from __future__ import annotations

from dataclasses import dataclass

from ad_report_summarizer.config import settings
from ad_report_summarizer.services.kpi_extractor import KpiRecord
from ad_report_summarizer.utils.cells import is_untrustworthy
from ad_report_summarizer.utils.exceptions import StaleWorkbookError
from ad_report_summarizer.utils.logging import get_logger

logger = get_logger(__name__)

ESSENTIAL_FIELDS: tuple[str, ...] = (
    "achievement",
    "total_conversions",
    "cost_per_acquisition",
)


@dataclass(frozen=True)
class QualityReport:
    """Result of a passed quality check."""

    missing_fields: tuple[str, ...]
    threshold: int

    @property
    def passed(self) -> bool:
        return len(self.missing_fields) < self.threshold


def missing_essentials(
    record: KpiRecord, fields: tuple[str, ...] = ESSENTIAL_FIELDS
) -> list[str]:
    """Names of essential fields that are empty or a bare zero."""
    return [name for name in fields if is_untrustworthy(getattr(record, name))]


def check_extraction_quality(
    record: KpiRecord,
    threshold: int | None = None,
    fields: tuple[str, ...] = ESSENTIAL_FIELDS,
) -> QualityReport:
    """Reject the record if too many essential KPIs are missing.

    Args:
        record: Extracted KPIs.
        threshold: Missing-field count that rejects the record. Defaults to
            ``settings.essential_missing_threshold``.
        fields: Which fields count as essential.

    Returns:
        QualityReport listing any tolerated missing fields.

    Raises:
        StaleWorkbookError: If ``threshold`` or more essentials are missing.
    """
    limit = threshold if threshold is not None else settings.essential_missing_threshold
    missing = missing_essentials(record, fields)

    if len(missing) >= limit:
        logger.warning(
            "Extraction rejected as stale workbook",
            missing=",".join(missing),
            threshold=limit,
        )
        raise StaleWorkbookError(missing_fields=missing, threshold=limit)

    if missing:
        logger.info("Extraction accepted with missing KPI", missing=",".join(missing))
    return QualityReport(missing_fields=tuple(missing), threshold=limit)
