import asyncio
import sys
from pathlib import Path

from ad_report_summarizer.config import settings
from ad_report_summarizer.services import (
    AiContext,
    SummaryGenerator,
    WorkbookLoader,
    check_extraction_quality,
    extract_kpis,
)
from ad_report_summarizer.utils.exceptions import ReportError, StaleWorkbookError


def run(workbook_path: str) -> int:
    try:
        workbook = WorkbookLoader().load_path(Path(workbook_path))
    except ReportError as e:
        print(f"{e.message}: {workbook_path}")
        return 1

    extraction = extract_kpis(workbook)
    for message in extraction.log_messages:
        print(message)
    print()
    for name, value in extraction.record.to_dict().items():
        print(f"{name}: {value}")

    try:
        check_extraction_quality(extraction.record)
    except StaleWorkbookError as e:
        print()
        print(e.details["title"])
        print(e.message)
        return 2

    api_key = settings.get_llm_api_key()
    if not api_key:
        return 0

    result = asyncio.run(
        SummaryGenerator().generate(extraction.record, AiContext(), api_key)
    )
    print()
    print(result.text)
    return 0


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python main.py <path/to/report.xlsx>")
        sys.exit(1)

    sys.exit(run(sys.argv[1]))
