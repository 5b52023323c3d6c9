"""Report generation, parsing, validation and export."""

from patentrag.reports.citations import extract_citations, verify_citations
from patentrag.reports.export import export_report
from patentrag.reports.generator import ReportGenerator
from patentrag.reports.parsing import parse_llm_output
from patentrag.reports.schemas import (
    Citation,
    ExportFormat,
    Report,
    ReportChunk,
    ReportContent,
    ReportRequest,
    ReportValidation,
)
from patentrag.reports.streaming import ReportStream

__all__ = [
    "Citation",
    "ExportFormat",
    "Report",
    "ReportChunk",
    "ReportContent",
    "ReportGenerator",
    "ReportRequest",
    "ReportStream",
    "ReportValidation",
    "export_report",
    "extract_citations",
    "parse_llm_output",
    "verify_citations",
]
