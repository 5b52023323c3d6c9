"""Data models for prompt construction."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from patentrag.retrieval.schemas import RetrievedChunk


class AnalysisTask(StrEnum):
    """Supported patent analysis tasks."""

    FTO = "fto"
    INFRINGEMENT_RISK = "infringement_risk"
    PATENT_LANDSCAPE = "patent_landscape"
    PORTFOLIO_STRATEGY = "portfolio_strategy"
    VALUATION = "valuation"
    CLAIM_DRAFTING = "claim_drafting"
    PRIOR_ART_SEARCH = "prior_art_search"
    OFFICE_ACTION_RESPONSE = "office_action_response"


class OutputFormat(StrEnum):
    STRUCTURED = "structured"  # JSON
    NARRATIVE = "narrative"    # Markdown with headings
    BULLET = "bullet"


class DetailLevel(StrEnum):
    SUMMARY = "summary"
    STANDARD = "standard"
    DETAILED = "detailed"
    EXPERT = "expert"


@dataclass
class MoleculeContext:
    name: str = ""
    smiles: str = ""
    molecular_formula: str = ""
    targets: list[str] = field(default_factory=list)
    indications: list[str] = field(default_factory=list)
    development_stage: str = ""


@dataclass
class PatentContext:
    patent_number: str
    title: str = ""
    abstract: str = ""
    key_claims: list[str] = field(default_factory=list)
    applicant: str = ""
    priority_date: str = ""
    legal_status: str = ""


@dataclass
class ClaimAnalysisContext:
    """A parsed claim with its scope assessment."""

    claim_text: str
    claim_number: int | None = None
    patent_number: str = ""
    claim_type: str = ""  # "independent" / "dependent"
    scope_score: float | None = None
    features: list[str] = field(default_factory=list)


@dataclass
class PriorArtContext:
    source_id: str
    description: str = ""
    relevance: str = ""


@dataclass
class PromptParams:
    """Everything one prompt build needs.

    ``user_query`` is never truncated. Empty ``language`` means the
    configured default.
    """

    task: AnalysisTask | None = None
    target_molecule: MoleculeContext | None = None
    relevant_patents: list[PatentContext] = field(default_factory=list)
    claim_analysis: list[ClaimAnalysisContext] = field(default_factory=list)
    prior_art: list[PriorArtContext] = field(default_factory=list)
    rag_context: list[RetrievedChunk] = field(default_factory=list)
    user_query: str = ""
    output_format: OutputFormat = OutputFormat.NARRATIVE
    language: str = ""
    detail_level: DetailLevel = DetailLevel.STANDARD
    jurisdiction_focus: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Message:
    role: str
    content: str


@dataclass(frozen=True)
class BuiltPrompt:
    """A prompt ready for the model."""

    system_prompt: str
    user_prompt: str
    messages: list[Message]
    estimated_tokens: int
    truncation_applied: bool
    template_version: str
