"""Report quality scoring.

The composite score weighs four dimensions:

========================  ======
structural completeness   0.3
citation verification     0.3
content length            0.2
recommendation quality    0.2
========================  ======
"""

from __future__ import annotations

from patentrag.reports.schemas import (
    Citation,
    Recommendation,
    ReportContent,
    ReportSection,
    ValidationIssue,
    VerificationStatus,
)

STRUCTURE_WEIGHT = 0.3
CITATION_WEIGHT = 0.3
LENGTH_WEIGHT = 0.2
ACTIONABILITY_WEIGHT = 0.2

VALID_SCORE_THRESHOLD = 0.5

# (upper bound in characters, score); at or above the last bound scores 1.0
_LENGTH_STEPS: list[tuple[int, float]] = [(200, 0.2), (500, 0.4), (1000, 0.6), (2000, 0.8)]


def score_structure(content: ReportContent) -> tuple[float, list[ValidationIssue]]:
    score = 1.0
    issues: list[ValidationIssue] = []
    if not content.executive_summary.strip():
        score -= 0.4
        issues.append(ValidationIssue(
            issue_type="missing_summary",
            severity="error",
            description="Report has no executive summary.",
        ))
    if not content.sections:
        score -= 0.3
        issues.append(ValidationIssue(
            issue_type="missing_sections",
            severity="error",
            description="Report has no analysis sections.",
        ))
    if not content.conclusions:
        score -= 0.3
        issues.append(ValidationIssue(
            issue_type="missing_conclusions",
            severity="warning",
            description="Report states no conclusions.",
        ))
    return max(score, 0.0), issues


def score_citations(citations: list[Citation]) -> float:
    """Share of verified citations; 1.0 when there are none to check."""
    if not citations:
        return 1.0
    verified = sum(1 for c in citations if c.verification_status == VerificationStatus.VERIFIED)
    return verified / len(citations)


def _section_length(section: ReportSection) -> int:
    return len(section.content) + sum(_section_length(s) for s in section.subsections)


def content_length(content: ReportContent) -> int:
    if content.raw_output:
        return len(content.raw_output)
    total = len(content.executive_summary)
    total += sum(_section_length(s) for s in content.sections)
    total += sum(len(c.statement) for c in content.conclusions)
    total += sum(len(r.action) + len(r.rationale) for r in content.recommendations)
    return total


def score_length(content: ReportContent) -> float:
    n = content_length(content)
    for bound, score in _LENGTH_STEPS:
        if n < bound:
            return score
    return 1.0


def score_recommendation(rec: Recommendation) -> float:
    score = 0.0
    if rec.action.strip():
        score += 0.4
    if rec.priority.strip():
        score += 0.2
    if rec.rationale.strip():
        score += 0.2
    if rec.timeline.strip():
        score += 0.2
    return score


def score_actionability(recommendations: list[Recommendation]) -> float:
    if not recommendations:
        return 0.2
    return sum(score_recommendation(r) for r in recommendations) / len(recommendations)


def composite_score(structure: float, citations: float, length: float, actionability: float) -> float:
    return (
        STRUCTURE_WEIGHT * structure
        + CITATION_WEIGHT * citations
        + LENGTH_WEIGHT * length
        + ACTIONABILITY_WEIGHT * actionability
    )
