"""Report export to JSON and Markdown."""

from __future__ import annotations

import logging

import jinja2

from patentrag.errors import ExportFormatNotImplementedError, InvalidInputError
from patentrag.prompts.templates import title_case
from patentrag.reports.schemas import ExportFormat, Report

logger = logging.getLogger(__name__)

MARKDOWN_TEMPLATE = """\
{% macro table(t) %}
{% if t.title %}**{{ t.title }}**

{% endif %}
| {{ t.headers | join(" | ") }} |
|{% for _ in t.headers %} --- |{% endfor %}

{% for row in t.rows %}
| {{ row | join(" | ") }} |
{% endfor %}
{% endmacro %}
# {{ content.title or (report.task | title_case) ~ " Report" }}

## Executive Summary

{{ content.executive_summary or "_No summary provided._" }}

{% for section in content.sections %}
## {{ section.title or "Section " ~ section.order }}

{% if section.content %}
{{ section.content }}

{% endif %}
{% for t in section.tables %}
{{ table(t) }}
{% endfor %}
{% for sub in section.subsections %}
### {{ sub.title }}

{% if sub.content %}
{{ sub.content }}

{% endif %}
{% for t in sub.tables %}
{{ table(t) }}
{% endfor %}
{% endfor %}
{% endfor %}
{% if content.conclusions %}
## Conclusions

{% for c in content.conclusions %}
- {{ c.statement }}{% if c.confidence is not none %} _(confidence: {{ "%.0f" | format(c.confidence * 100) }}%)_{% endif %}

{% endfor %}

{% endif %}
{% if content.recommendations %}
## Recommendations

{% for r in content.recommendations %}
{{ loop.index }}. {% if r.priority %}**[{{ r.priority }}]** {% endif %}{{ r.action }}
{% if r.rationale %}
   - Rationale: {{ r.rationale }}
{% endif %}
{% if r.timeline %}
   - Timeline: {{ r.timeline }}
{% endif %}
{% endfor %}

{% endif %}
{% if content.risk_assessment %}
## Risk Assessment

**Overall risk:** {{ content.risk_assessment.overall_risk_level }} ({{ "%.2f" | format(content.risk_assessment.overall_risk_score) }})

{% if content.risk_assessment.risk_factors %}
| Risk factor | Likelihood | Impact | Score |
| --- | --- | --- | --- |
{% for f in content.risk_assessment.risk_factors %}
| {{ f.description | replace("|", "/") }} | {{ "%.2f" | format(f.likelihood) }} | {{ "%.2f" | format(f.impact) }} | {{ "%.2f" | format(f.score) }} |
{% endfor %}

{% endif %}
{% endif %}
{% if content.citations %}
## References

{% for c in content.citations %}
- [{{ c.citation_id }}] {{ c.source }} ({{ c.source_type }}, {{ c.verification_status }}){% if c.url %} <{{ c.url }}>{% endif %}

{% endfor %}

{% endif %}
---
_Report {{ report.report_id }} ({{ report.task }}) generated {{ report.generated_at.isoformat() }}\
{% if report.metadata.model_id %} by {{ report.metadata.model_id }}{% if report.metadata.model_version %} {{ report.metadata.model_version }}{% endif %}{% endif %}\
 in {{ "%.0f" | format(report.latency_ms) }} ms; {{ report.token_usage.total_tokens }} tokens\
{% if report.validation %}; quality score {{ "%.2f" | format(report.validation.quality_score) }}{% endif %}._
"""

_env = jinja2.Environment(
    undefined=jinja2.StrictUndefined,
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
)
_env.filters["title_case"] = title_case
_markdown = _env.from_string(MARKDOWN_TEMPLATE)


def render_markdown(report: Report) -> str:
    if report.content is None:
        raise InvalidInputError("report has no content to export")
    return _markdown.render(report=report, content=report.content)


def export_report(report: Report, export_format: ExportFormat | str) -> bytes:
    """Serialize ``report``.

    Raises:
        InvalidInputError: ``report`` is None or the format is unknown.
        ExportFormatNotImplementedError: PDF or DOCX was requested.
    """
    if report is None:
        raise InvalidInputError("report is required")
    try:
        fmt = ExportFormat(export_format)
    except ValueError as exc:
        raise InvalidInputError(f"unknown export format: {export_format!r}") from exc

    if fmt == ExportFormat.JSON:
        return report.model_dump_json(indent=2).encode("utf-8")
    if fmt == ExportFormat.MARKDOWN:
        return render_markdown(report).encode("utf-8")

    raise ExportFormatNotImplementedError(f"export to {fmt} is not implemented")
