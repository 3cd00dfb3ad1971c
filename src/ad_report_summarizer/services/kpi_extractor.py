"""KPI extraction from the monthly ad performance report.

Each KPI has a canonical address on the summary sheet and a caption used
for label search. A direct read that comes back empty or as a bare zero is
not trusted: a genuinely zero metric is rare and looks exactly like an
unpopulated cell, so the caption search gets a second look before the KPI
is given up as missing.

Every attempt is recorded in an extraction log, one entry per KPI, so the
caller can show which values came from where.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from ad_report_summarizer.config import settings
from ad_report_summarizer.services.cell_reader import read_cell
from ad_report_summarizer.services.label_locator import LabelDirection, find_by_label
from ad_report_summarizer.utils.cells import is_untrustworthy
from ad_report_summarizer.utils.logging import get_logger, timed_operation
from ad_report_summarizer.workbook import Workbook, find_summary_sheet

logger = get_logger(__name__)


class ExtractionOutcome(str, Enum):
    """How a KPI value was obtained."""

    DIRECT = "direct"
    FALLBACK = "fallback"
    MISS = "miss"


_OUTCOME_TAGS = {
    ExtractionOutcome.DIRECT: "Success",
    ExtractionOutcome.FALLBACK: "Smart",
    ExtractionOutcome.MISS: "Failed",
}


@dataclass(frozen=True)
class ExtractionLogEntry:
    """Outcome of one KPI lookup."""

    label: str
    outcome: ExtractionOutcome
    address: str | None = None
    value: str = ""

    @property
    def message(self) -> str:
        """One-line description, e.g. ``[Smart] クリック率: AG20 (1.2%)``."""
        tag = _OUTCOME_TAGS[self.outcome]
        if self.outcome is ExtractionOutcome.MISS:
            return f"[{tag}] {self.label}: Not found"
        return f"[{tag}] {self.label}: {self.address} ({self.value})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "outcome": self.outcome.value,
            "address": self.address,
            "value": self.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class KpiSpec:
    """Where to find one KPI."""

    field: str
    address: str
    label: str
    direction: LabelDirection = LabelDirection.BELOW


DEFAULT_KPI_SCHEDULE: tuple[KpiSpec, ...] = (
    KpiSpec("achievement", "E8", "目標達成率"),
    KpiSpec("total_conversions", "R8", "コンバージョン数"),
    KpiSpec("conversion_rate", "AF8", "コンバージョン率"),
    KpiSpec("cost_per_acquisition", "AT8", "コンバージョン単価"),
    KpiSpec("click_through_rate", "AF19", "クリック率"),
    KpiSpec("goal_conversions", "BH38", "目標値"),
)

# Conversion breakdown table on the summary sheet (1-based rows).
BREAKDOWN_ROWS: tuple[int, ...] = (10, 11, 12, 13, 14, 15)
BREAKDOWN_NAME_COLUMN = "R"
BREAKDOWN_COUNT_COLUMN = "Z"
BREAKDOWN_SEPARATOR = "・"


@dataclass(frozen=True)
class KpiRecord:
    """Extracted KPIs as normalized display strings.

    Values stay as text: the source cells are locale-formatted display
    strings ("120%", "3,400円") rather than clean numbers.
    """

    achievement: str = ""
    total_conversions: str = ""
    conversion_rate: str = ""
    cost_per_acquisition: str = ""
    click_through_rate: str = ""
    goal_conversions: str = ""
    conversion_breakdown: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class ExtractionResult:
    """A completed extraction pass: the record plus its log."""

    record: KpiRecord
    log: tuple[ExtractionLogEntry, ...]
    summary_sheet: str
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def log_messages(self) -> list[str]:
        return [entry.message for entry in self.log]


def extract_kpi(
    workbook: Workbook,
    sheet_hint: str,
    address: str,
    label: str,
    log: list[ExtractionLogEntry],
    direction: LabelDirection = LabelDirection.BELOW,
) -> str:
    """Read one KPI, falling back to label search, and log the outcome.

    Args:
        workbook: Parsed workbook.
        sheet_hint: Sheet name fragment.
        address: Canonical address of the KPI.
        label: Caption used by the fallback search.
        log: Extraction log; exactly one entry is appended.
        direction: Position of the value relative to its caption.

    Returns:
        The KPI value, or ``""`` when neither path found a usable value.
    """
    value = read_cell(workbook, sheet_hint, address)
    if not is_untrustworthy(value):
        log.append(
            ExtractionLogEntry(label, ExtractionOutcome.DIRECT, address, value)
        )
        return value

    match = find_by_label(workbook, sheet_hint, label, direction)
    if match is not None:
        logger.debug(
            "Direct read untrusted, used label search",
            label=label,
            direct_address=address,
            direct_value=repr(value),
            anchor=match.anchor_address,
            address=match.address,
        )
        log.append(
            ExtractionLogEntry(
                label, ExtractionOutcome.FALLBACK, match.address, match.value
            )
        )
        return match.value

    logger.warning("KPI not found", label=label, direct_address=address)
    log.append(ExtractionLogEntry(label, ExtractionOutcome.MISS))
    return ""


def extract_breakdown(workbook: Workbook, sheet_hint: str) -> str:
    """Join the conversion breakdown rows as ``名前N件`` pairs.

    Rows missing a name or count, or with a count of "0", are skipped.
    """
    items = []
    for row in BREAKDOWN_ROWS:
        name = read_cell(workbook, sheet_hint, f"{BREAKDOWN_NAME_COLUMN}{row}")
        count = read_cell(workbook, sheet_hint, f"{BREAKDOWN_COUNT_COLUMN}{row}")
        if name and count and count != "0":
            items.append(f"{name}{count}件")
    return BREAKDOWN_SEPARATOR.join(items)


def extract_kpis(
    workbook: Workbook,
    summary_marker: str | None = None,
    schedule: tuple[KpiSpec, ...] = DEFAULT_KPI_SCHEDULE,
) -> ExtractionResult:
    """Run the full KPI schedule against the workbook's summary sheet.

    Args:
        workbook: Parsed workbook.
        summary_marker: Name fragment of the summary sheet. Defaults to settings.
        schedule: KPI locations; defaults to the standard report layout.

    Returns:
        ExtractionResult with the record and an immutable log.
    """
    marker = summary_marker or settings.summary_sheet_marker
    summary_sheet = find_summary_sheet(workbook, marker)
    log: list[ExtractionLogEntry] = []

    with timed_operation(logger, "kpi_extraction") as metrics:
        values = {
            spec.field: extract_kpi(
                workbook,
                summary_sheet,
                spec.address,
                spec.label,
                log,
                spec.direction,
            )
            for spec in schedule
        }
        values["conversion_breakdown"] = extract_breakdown(workbook, summary_sheet)

        counts = {outcome.value: 0 for outcome in ExtractionOutcome}
        for entry in log:
            counts[entry.outcome.value] += 1
        metrics.custom_metrics = counts

    logger.info("KPI extraction finished", summary_sheet=summary_sheet, **counts)
    return ExtractionResult(
        record=KpiRecord(**values),
        log=tuple(log),
        summary_sheet=summary_sheet,
        counts=counts,
    )
