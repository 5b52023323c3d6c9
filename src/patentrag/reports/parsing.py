"""Turn raw model output into ``ReportContent``.

Three strategies: structured JSON, Markdown narrative and bullet lists.
Each is a small pipeline of classifier functions. Any parser failure
degrades to a single-section report; parsing never fails on non-empty
input.
"""

from __future__ import annotations

import json
import logging
import re

from patentrag.chunking.paragraph_chunker import split_paragraphs
from patentrag.errors import EmptyLLMOutputError
from patentrag.prompts.schemas import OutputFormat
from patentrag.reports.citations import extract_citations
from patentrag.reports.schemas import (
    Conclusion,
    Recommendation,
    ReportContent,
    ReportSection,
    ReportTable,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
)

logger = logging.getLogger(__name__)

SUMMARY_MAX_CHARS = 500
FULL_ANALYSIS_TITLE = "Full Analysis"

_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*\n(.*?)\n?\s*```\s*$", re.DOTALL)
_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_LIST_ITEM = re.compile(r"^\s*(?:[-*•+]|\d+[.)、])\s+(.*)$")
_TABLE_ROW = re.compile(r"^\s*\|.*\|\s*$")
_TABLE_SEPARATOR = re.compile(r"^\s*\|?\s*:?-{3,}:?\s*(?:\|\s*:?-{3,}:?\s*)*\|?\s*$")

# Checked in this order; the first match wins.
HEADING_CATEGORIES: list[tuple[str, re.Pattern[str]]] = [
    ("conclusion", re.compile(r"conclusion|结论|总结", re.IGNORECASE)),
    ("recommendation", re.compile(r"recommend|next steps|action items|建议|推荐", re.IGNORECASE)),
    ("risk", re.compile(r"\brisks?\b|风险", re.IGNORECASE)),
    ("summary", re.compile(r"summary|overview|摘要|概要|概述", re.IGNORECASE)),
]


class ParseError(ValueError):
    """A format-specific parser could not make sense of the output."""


# ---------------------------------------------------------------------------
# Small classifiers and helpers
# ---------------------------------------------------------------------------


def classify_heading(title: str) -> str | None:
    """Map a section heading to summary/conclusion/recommendation/risk, or None."""
    for category, pattern in HEADING_CATEGORIES:
        if pattern.search(title):
            return category
    return None


def strip_code_fences(raw: str) -> str:
    text = raw.strip()
    m = _FENCE.match(text)
    if m:
        return m.group(1).strip()
    return text


def parse_list_items(text: str) -> list[str]:
    """Bullet or numbered items; continuation lines join the previous item.

    Falls back to paragraphs when the text has no list markers.
    """
    items: list[str] = []
    for line in text.splitlines():
        m = _LIST_ITEM.match(line)
        if m:
            items.append(m.group(1).strip())
        elif line.strip() and items:
            items[-1] = f"{items[-1]} {line.strip()}"
    if not items:
        return split_paragraphs(text)
    return [i for i in items if i]


def extract_tables(text: str) -> tuple[str, list[ReportTable]]:
    """Pull Markdown tables out of ``text``; return the remaining text and the tables."""
    lines = text.splitlines()
    kept: list[str] = []
    tables: list[ReportTable] = []
    i = 0
    while i < len(lines):
        if (
            _TABLE_ROW.match(lines[i])
            and i + 1 < len(lines)
            and _TABLE_SEPARATOR.match(lines[i + 1])
        ):
            headers = _table_cells(lines[i])
            rows: list[list[str]] = []
            i += 2
            while i < len(lines) and _TABLE_ROW.match(lines[i]):
                rows.append(_table_cells(lines[i]))
                i += 1
            tables.append(ReportTable(headers=headers, rows=rows))
            continue
        kept.append(lines[i])
        i += 1
    return "\n".join(kept).strip(), tables


def _table_cells(line: str) -> list[str]:
    return [c.strip() for c in line.strip().strip("|").split("|")]


def _first_paragraph(text: str) -> str:
    paragraphs = split_paragraphs(text)
    first = paragraphs[0] if paragraphs else text.strip()
    if len(first) > SUMMARY_MAX_CHARS:
        return first[:SUMMARY_MAX_CHARS] + "..."
    return first


# ---------------------------------------------------------------------------
# Conclusions, recommendations, risk
# ---------------------------------------------------------------------------

_CONFIDENCE = re.compile(r"\(?\s*confidence\s*[:：=]?\s*(\d*\.?\d+)\s*(%?)\s*\)?", re.IGNORECASE)
_PRIORITY_FIELD = re.compile(
    r"\(?\[?\s*priority\s*[:：]\s*(critical|high|medium|low|urgent)\s*\]?\)?", re.IGNORECASE
)
_PRIORITY_LEAD = re.compile(
    r"^\s*(?:\*\*)?[\[(]?(critical|high|medium|low)(?:\s+priority)?[\])]?(?:\*\*)?(?:\s*[:：]|\s+[-–])\s*",
    re.IGNORECASE,
)
_PRIORITY_ZH = re.compile(r"(高|中|低)优先级")
_URGENT = re.compile(r"immediately|urgent|as soon as possible|\basap\b|before launch|立即|尽快", re.IGNORECASE)
_RATIONALE_LABEL = r"(?:rationale|reason|理由)\s*[:：]"
_TIMELINE_LABEL = r"(?:timeline|timeframe|时间)\s*[:：]"
# Each fragment runs to the other label, a semicolon or the end of the line.
_RATIONALE = re.compile(
    _RATIONALE_LABEL + r"\s*(.+?)(?=\s*" + _TIMELINE_LABEL + r"|[;\n]|$)", re.IGNORECASE
)
_TIMELINE = re.compile(
    _TIMELINE_LABEL + r"\s*(.+?)(?=\s*" + _RATIONALE_LABEL + r"|[;\n]|$)", re.IGNORECASE
)
_WITHIN = re.compile(r"\b(within (?:the next )?\d+\s*(?:days?|weeks?|months?|years?))", re.IGNORECASE)
_BECAUSE = re.compile(r"\bbecause\s+(.+)$", re.IGNORECASE)


def _clean_fragment(text: str) -> str:
    return text.strip().strip(";,.-–—").strip()


def parse_conclusion(item: str) -> Conclusion:
    confidence = None
    m = _CONFIDENCE.search(item)
    if m:
        value = float(m.group(1))
        if m.group(2) or value > 1.0:
            value /= 100.0
        confidence = max(0.0, min(1.0, value))
        item = item[: m.start()] + item[m.end():]
    return Conclusion(statement=_clean_fragment(item) or item.strip(), confidence=confidence)


def _normalize_priority(value: str) -> str:
    value = value.lower()
    if value in ("critical", "urgent", "high", "高"):
        return "High"
    if value in ("medium", "中"):
        return "Medium"
    return "Low"


def infer_priority(item: str, position: int) -> str:
    """Explicit marker first, then urgency cues, then list position."""
    for pattern in (_PRIORITY_FIELD, _PRIORITY_LEAD, _PRIORITY_ZH):
        m = pattern.search(item)
        if m:
            return _normalize_priority(m.group(1))
    if _URGENT.search(item):
        return "High"
    if position == 0:
        return "High"
    if position <= 2:
        return "Medium"
    return "Low"


def parse_recommendation(item: str, position: int) -> Recommendation:
    priority = infer_priority(item, position)
    text = item

    rationale = ""
    m = _RATIONALE.search(text)
    if m:
        rationale = _clean_fragment(m.group(1))
        text = text[: m.start()] + text[m.end():]

    timeline = ""
    m = _TIMELINE.search(text)
    if m:
        timeline = _clean_fragment(m.group(1))
        text = text[: m.start()] + text[m.end():]
    else:
        m = _WITHIN.search(text)
        if m:
            timeline = m.group(1)

    if not rationale:
        m = _BECAUSE.search(text)
        if m:
            rationale = _clean_fragment(m.group(1))
            text = text[: m.start()]

    for pattern in (_PRIORITY_FIELD, _PRIORITY_LEAD, _PRIORITY_ZH):
        text = pattern.sub("", text)

    return Recommendation(
        action=_clean_fragment(text) or item.strip(),
        priority=priority,
        rationale=rationale,
        timeline=timeline,
    )


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def compute_risk_factor_score(likelihood: float, impact: float) -> float:
    return clamp01(likelihood) * clamp01(impact)


def classify_risk_level(score: float) -> RiskLevel:
    if score >= 0.8:
        return RiskLevel.CRITICAL
    if score >= 0.6:
        return RiskLevel.HIGH
    if score >= 0.4:
        return RiskLevel.MEDIUM
    if score >= 0.2:
        return RiskLevel.LOW
    return RiskLevel.NEGLIGIBLE


_HIGH_CUES = re.compile(r"\bhigh\b|\blikely\b|significant|substantial|strong|高", re.IGNORECASE)
_LOW_CUES = re.compile(r"\blow\b|unlikely|minor|remote|weak|低", re.IGNORECASE)
_SEVERE_IMPACT = re.compile(r"injunction|litigation|damages|blocking|critical|severe|禁令|诉讼", re.IGNORECASE)


def _explicit_value(text: str, name: str) -> float | None:
    m = re.search(rf"{name}\s*[:：=]\s*(\d*\.?\d+)\s*(%?)", text, re.IGNORECASE)
    if not m:
        return None
    value = float(m.group(1))
    if m.group(2) or value > 1.0:
        value /= 100.0
    return clamp01(value)


def _cue_level(text: str) -> float:
    if _HIGH_CUES.search(text):
        return 0.8
    if _LOW_CUES.search(text):
        return 0.2
    return 0.5


def parse_risk_factor(item: str) -> RiskFactor:
    likelihood = _explicit_value(item, "likelihood")
    if likelihood is None:
        likelihood = _cue_level(item)
    impact = _explicit_value(item, "impact")
    if impact is None:
        impact = 0.9 if _SEVERE_IMPACT.search(item) else _cue_level(item)
    return RiskFactor(
        description=item.strip(),
        likelihood=likelihood,
        impact=impact,
        score=compute_risk_factor_score(likelihood, impact),
    )


def build_risk_assessment(text: str) -> RiskAssessment | None:
    factors = [parse_risk_factor(item) for item in parse_list_items(text)]
    if not factors:
        return None
    overall = sum(f.score for f in factors) / len(factors)
    return RiskAssessment(
        overall_risk_level=str(classify_risk_level(overall)),
        overall_risk_score=overall,
        risk_factors=factors,
    )


# ---------------------------------------------------------------------------
# Format parsers
# ---------------------------------------------------------------------------


def parse_structured(raw: str) -> ReportContent:
    text = strip_code_fences(raw)
    if not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise ParseError("no JSON object in output")
        text = text[start : end + 1]

    data = json.loads(text)
    if not isinstance(data, dict):
        raise ParseError("structured output is not a JSON object")

    content = ReportContent.model_validate(data)
    for i, section in enumerate(content.sections, 1):
        section.order = section.order or i
        section.section_id = section.section_id or f"section-{i}"
    if content.risk_assessment is not None:
        _score_risk_factors(content.risk_assessment)
    if not content.executive_summary and not content.sections:
        raise ParseError("structured output has neither summary nor sections")
    return content


def _score_risk_factors(assessment: RiskAssessment) -> None:
    for f in assessment.risk_factors:
        f.score = f.score or compute_risk_factor_score(f.likelihood, f.impact)
    if assessment.risk_factors and not assessment.overall_risk_score:
        assessment.overall_risk_score = (
            sum(f.score for f in assessment.risk_factors) / len(assessment.risk_factors)
        )
    if not assessment.overall_risk_level:
        assessment.overall_risk_level = str(classify_risk_level(assessment.overall_risk_score))


def _split_markdown(raw: str) -> tuple[str, list[tuple[str, str, list[tuple[str, str]]]], str]:
    """Split Markdown into (title, [(heading, body, [(sub_heading, sub_body)])], preamble)."""
    title = ""
    preamble: list[str] = []
    sections: list[tuple[str, list[str], list[tuple[str, list[str]]]]] = []

    for line in raw.splitlines():
        m = _HEADING.match(line)
        if m:
            level, heading = len(m.group(1)), m.group(2).strip().strip("*").strip()
            if level == 1 and not title and not sections:
                title = heading
                continue
            if level >= 3 and sections:
                sections[-1][2].append((heading, []))
                continue
            sections.append((heading, [], []))
            continue

        if not sections:
            preamble.append(line)
        elif sections[-1][2]:
            sections[-1][2][-1][1].append(line)
        else:
            sections[-1][1].append(line)

    out = [
        (heading, "\n".join(body).strip(), [(h, "\n".join(b).strip()) for h, b in subs])
        for heading, body, subs in sections
    ]
    return title, out, "\n".join(preamble).strip()


def parse_narrative(raw: str) -> ReportContent:
    title, sections, preamble = _split_markdown(raw)
    if not sections:
        raise ParseError("no Markdown sections in narrative output")

    content = ReportContent(title=title)
    order = 0
    for heading, body, subs in sections:
        category = classify_heading(heading)

        if category == "summary" and not content.executive_summary:
            content.executive_summary = body
            continue
        if category == "conclusion":
            content.conclusions.extend(parse_conclusion(i) for i in parse_list_items(body))
            continue
        if category == "recommendation":
            start = len(content.recommendations)
            content.recommendations.extend(
                parse_recommendation(item, start + i)
                for i, item in enumerate(parse_list_items(body))
            )
            continue
        if category == "risk" and content.risk_assessment is None:
            content.risk_assessment = build_risk_assessment(body)

        order += 1
        text, tables = extract_tables(body)
        section = ReportSection(
            section_id=f"section-{order}",
            title=heading,
            content=text,
            order=order,
            tables=tables,
        )
        for j, (sub_heading, sub_body) in enumerate(subs, 1):
            sub_text, sub_tables = extract_tables(sub_body)
            section.subsections.append(ReportSection(
                section_id=f"section-{order}.{j}",
                title=sub_heading,
                content=sub_text,
                order=j,
                tables=sub_tables,
            ))
        content.sections.append(section)

    if not content.executive_summary:
        source = preamble or (content.sections[0].content if content.sections else "")
        content.executive_summary = _first_paragraph(source) if source else ""
    return content


def parse_bullet(raw: str) -> ReportContent:
    title = ""
    lines = raw.splitlines()
    for line in lines:
        m = _HEADING.match(line)
        if m:
            title = m.group(2).strip()
            break

    items: list[str] = []
    for line in lines:
        if _HEADING.match(line):
            continue
        m = _LIST_ITEM.match(line)
        if m:
            items.append(m.group(1).strip())
        elif line.strip() and items:
            items[-1] = f"{items[-1]} {line.strip()}"
    items = [i for i in items if i]
    if not items:
        raise ParseError("no bullet items in output")

    content = ReportContent(title=title, executive_summary=items[0])
    for i, item in enumerate(items[1:], 1):
        content.sections.append(ReportSection(
            section_id=f"section-{i}",
            title=f"Point {i}",
            content=item,
            order=i,
        ))
    return content


def degrade_to_single_section(raw: str) -> ReportContent:
    """Fallback: first paragraph as summary, full text as one section."""
    title = ""
    first_line = raw.strip().splitlines()[0] if raw.strip() else ""
    m = _HEADING.match(first_line)
    if m and len(m.group(1)) == 1:
        title = m.group(2).strip()

    return ReportContent(
        title=title,
        executive_summary=_first_paragraph(raw),
        sections=[ReportSection(
            section_id="section-1",
            title=FULL_ANALYSIS_TITLE,
            content=raw,
            order=1,
        )],
    )


_PARSERS = {
    OutputFormat.STRUCTURED: parse_structured,
    OutputFormat.NARRATIVE: parse_narrative,
    OutputFormat.BULLET: parse_bullet,
}


def parse_llm_output(raw: str, output_format: OutputFormat | str = OutputFormat.NARRATIVE) -> ReportContent:
    """Parse model output into report content.

    Raises:
        EmptyLLMOutputError: ``raw`` is empty or whitespace.
    """
    if raw is None or not raw.strip():
        raise EmptyLLMOutputError("model output is empty")

    try:
        parser = _PARSERS[OutputFormat(output_format)]
    except ValueError:
        parser = parse_narrative

    try:
        content = parser(raw)
    except (ValueError, TypeError, KeyError) as exc:
        logger.warning("Failed to parse %s output (%s); degrading to single section", output_format, exc)
        content = degrade_to_single_section(raw)

    content.raw_output = raw
    content.citations = extract_citations(raw)
    return content
