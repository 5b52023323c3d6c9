"""Data models for generated reports.

Report content is modelled with pydantic: it is validated straight out of
model-produced JSON and round-tripped through JSON export.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from patentrag.prompts.schemas import AnalysisTask, OutputFormat, PromptParams


class ExportFormat(StrEnum):
    JSON = "json"
    MARKDOWN = "markdown"
    PDF = "pdf"
    DOCX = "docx"


class VerificationStatus(StrEnum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    NOT_FOUND = "not_found"


class CitationSourceType(StrEnum):
    PATENT = "patent"
    MPEP = "mpep"
    STATUTE = "statute"
    CASE_LAW = "case_law"
    OTHER = "other"


class RiskLevel(StrEnum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    NEGLIGIBLE = "Negligible"


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


class ReportTable(BaseModel):
    title: str = ""
    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)


class ReportSection(BaseModel):
    section_id: str = ""
    title: str = ""
    content: str = ""
    order: int = 0
    subsections: list[ReportSection] = Field(default_factory=list)
    tables: list[ReportTable] = Field(default_factory=list)
    figures: list[str] = Field(default_factory=list)


class Conclusion(BaseModel):
    statement: str
    confidence: float | None = None


class Recommendation(BaseModel):
    action: str = ""
    priority: str = ""
    rationale: str = ""
    timeline: str = ""


class RiskFactor(BaseModel):
    description: str
    likelihood: float = 0.5
    impact: float = 0.5
    score: float = 0.0
    mitigation: str = ""


class RiskAssessment(BaseModel):
    overall_risk_level: str = ""
    overall_risk_score: float = 0.0
    risk_factors: list[RiskFactor] = Field(default_factory=list)


class Citation(BaseModel):
    """A source reference found in model output.

    ``verification_status`` only moves forward: once ``VERIFIED`` it stays.
    """

    citation_id: str = ""
    source: str
    source_type: CitationSourceType = CitationSourceType.OTHER
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    url: str | None = None
    matched_document_id: str | None = None

    def mark(self, status: VerificationStatus, document_id: str | None = None) -> None:
        if self.verification_status == VerificationStatus.VERIFIED:
            return
        self.verification_status = status
        if document_id:
            self.matched_document_id = document_id


class ReportContent(BaseModel):
    title: str = ""
    executive_summary: str = ""
    sections: list[ReportSection] = Field(default_factory=list)
    conclusions: list[Conclusion] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    risk_assessment: RiskAssessment | None = None
    citations: list[Citation] = Field(default_factory=list)
    raw_output: str = ""

    # Models often emit plain strings where objects are expected.

    @field_validator("conclusions", mode="before")
    @classmethod
    def _coerce_conclusions(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [{"statement": i} if isinstance(i, str) else i for i in v]
        return v

    @field_validator("recommendations", mode="before")
    @classmethod
    def _coerce_recommendations(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [{"action": i} if isinstance(i, str) else i for i in v]
        return v

    @field_validator("sections", mode="before")
    @classmethod
    def _coerce_sections(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [{"content": i} if isinstance(i, str) else i for i in v]
        return v


# ---------------------------------------------------------------------------
# Report envelope
# ---------------------------------------------------------------------------


class ReportMetadata(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str = ""
    model_version: str = ""
    template_version: str = ""
    output_format: OutputFormat = OutputFormat.NARRATIVE
    language: str = ""
    request_id: str = ""
    rag_chunks_used: int = 0
    reranker_applied: bool = False
    truncation_applied: bool = False


class ValidationIssue(BaseModel):
    issue_type: str
    severity: str = "warning"
    description: str = ""


class CitationVerificationSummary(BaseModel):
    total: int = 0
    verified_count: int = 0
    not_found_count: int = 0
    unverified_count: int = 0


class ReportValidation(BaseModel):
    is_valid: bool
    quality_score: float
    structure_score: float = 0.0
    citation_score: float = 0.0
    length_score: float = 0.0
    actionability_score: float = 0.0
    issues: list[ValidationIssue] = Field(default_factory=list)
    citation_verification: CitationVerificationSummary | None = None


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Report(BaseModel):
    report_id: str
    task: AnalysisTask
    content: ReportContent | None = None
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)
    validation: ReportValidation | None = None
    generated_at: datetime
    latency_ms: float = 0.0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


# ---------------------------------------------------------------------------
# Requests and streaming
# ---------------------------------------------------------------------------


@dataclass
class ReportRequest:
    """One report generation request.

    ``output_format`` overrides ``params.output_format`` when set.
    ``deadline_seconds`` bounds streaming generation.
    """

    task: AnalysisTask
    params: PromptParams | None = None
    output_format: OutputFormat | None = None
    quality_check: bool = True
    request_id: str = ""
    deadline_seconds: float | None = None


@dataclass(frozen=True)
class ReportChunk:
    chunk_index: int
    content: str
    section_hint: str = ""
    is_complete: bool = False
