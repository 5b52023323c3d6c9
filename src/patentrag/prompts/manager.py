"""Prompt assembly with token budgeting.

The user prompt is built from five context sections. When they do not fit
the remaining budget, sections are truncated from lowest to highest
priority (RAG, prior art, patents, claims, molecule). The user query is
never truncated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from patentrag.config import PromptSettings
from patentrag.errors import InvalidInputError
from patentrag.prompts.instructions import (
    DETAIL_INSTRUCTIONS,
    FORMAT_INSTRUCTIONS,
    TASK_INSTRUCTIONS,
    jurisdiction_instruction,
    language_instruction,
)
from patentrag.prompts.schemas import (
    AnalysisTask,
    BuiltPrompt,
    ClaimAnalysisContext,
    DetailLevel,
    Message,
    MoleculeContext,
    OutputFormat,
    PatentContext,
    PriorArtContext,
    PromptParams,
)
from patentrag.prompts.system_prompts import SYSTEM_PROMPTS, system_template_name
from patentrag.prompts.templates import TemplateInfo, TemplateRegistry
from patentrag.retrieval.context import format_entry
from patentrag.retrieval.schemas import RetrievedChunk
from patentrag.tokens import estimate_tokens, truncate_to_tokens

logger = logging.getLogger(__name__)

# (key, heading) in display order
SECTION_LABELS: list[tuple[str, str]] = [
    ("molecule", "Molecule Information"),
    ("patents", "Relevant Patents"),
    ("claims", "Claim Analysis"),
    ("prior_art", "Prior Art"),
    ("rag", "Retrieved Context"),
]

# Lowest priority first
TRUNCATION_ORDER: tuple[str, ...] = ("rag", "prior_art", "patents", "claims", "molecule")


# ---------------------------------------------------------------------------
# Section formatting
# ---------------------------------------------------------------------------


def format_molecule(mol: MoleculeContext | None) -> str:
    if mol is None:
        return ""
    fields = [
        ("Name", mol.name),
        ("SMILES", mol.smiles),
        ("Molecular Formula", mol.molecular_formula),
        ("Targets", ", ".join(mol.targets)),
        ("Indications", ", ".join(mol.indications)),
        ("Development Stage", mol.development_stage),
    ]
    return "\n".join(f"{label}: {value}" for label, value in fields if value)


def format_patents(patents: list[PatentContext]) -> str:
    blocks = []
    for p in patents:
        lines = [f"### {p.patent_number}" + (f": {p.title}" if p.title else "")]
        if p.applicant:
            lines.append(f"Applicant: {p.applicant}")
        if p.priority_date:
            lines.append(f"Priority Date: {p.priority_date}")
        if p.legal_status:
            lines.append(f"Legal Status: {p.legal_status}")
        if p.abstract:
            lines.append(f"Abstract: {p.abstract}")
        if p.key_claims:
            lines.append("Key Claims:")
            lines.extend(f"- {c}" for c in p.key_claims)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def format_claims(claims: list[ClaimAnalysisContext]) -> str:
    blocks = []
    for c in claims:
        head = "Claim"
        if c.patent_number:
            head = f"{c.patent_number} claim"
        if c.claim_number is not None:
            head += f" {c.claim_number}"
        tags = []
        if c.claim_type:
            tags.append(c.claim_type)
        if c.scope_score is not None:
            tags.append(f"scope {c.scope_score:.2f}")
        if tags:
            head += f" ({', '.join(tags)})"
        lines = [f"{head}: {c.claim_text}"]
        if c.features:
            lines.append("Features: " + "; ".join(c.features))
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def format_prior_art(prior_art: list[PriorArtContext]) -> str:
    lines = []
    for pa in prior_art:
        line = f"- [{pa.source_id}] {pa.description}".rstrip()
        if pa.relevance:
            line += f" (relevance: {pa.relevance})"
        lines.append(line)
    return "\n".join(lines)


def format_rag(chunks: list[RetrievedChunk]) -> str:
    ordered = sorted(chunks, key=lambda c: c.effective_score, reverse=True)
    return "".join(format_entry(c) for c in ordered).strip()


@dataclass
class _Section:
    key: str
    label: str
    text: str
    tokens: int


def fit_sections(sections: list[_Section], budget: int) -> bool:
    """Shrink sections in place until their total fits ``budget``.

    A section whose tokens fit inside the remaining excess is dropped
    entirely; otherwise it is cut to the longest prefix that absorbs the
    excess. Returns True when anything was truncated.
    """
    excess = sum(s.tokens for s in sections) - budget
    if excess <= 0:
        return False

    by_key = {s.key: s for s in sections}
    for key in TRUNCATION_ORDER:
        if excess <= 0:
            break
        section = by_key.get(key)
        if section is None or section.tokens == 0:
            continue

        if section.tokens <= excess:
            excess -= section.tokens
            logger.debug("Dropped section %s (%d tokens)", key, section.tokens)
            section.text, section.tokens = "", 0
            continue

        allowed = section.tokens - excess
        section.text = truncate_to_tokens(section.text, allowed)
        new_tokens = estimate_tokens(section.text)
        excess -= section.tokens - new_tokens
        logger.debug("Truncated section %s: %d → %d tokens", key, section.tokens, new_tokens)
        section.tokens = new_tokens

    return True


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


def coerce_task(task: Any) -> AnalysisTask:
    if isinstance(task, AnalysisTask):
        return task
    try:
        return AnalysisTask(task)
    except ValueError as exc:
        raise InvalidInputError(f"invalid analysis task: {task!r}") from exc


class PromptManager:
    """Builds system + user prompts under a token budget."""

    def __init__(
        self,
        settings: PromptSettings | None = None,
        registry: TemplateRegistry | None = None,
    ):
        self.settings = settings or PromptSettings()
        if registry is None:
            registry = TemplateRegistry(default_version=self.settings.template_version)
        self.registry = registry
        for task, body in SYSTEM_PROMPTS.items():
            name = system_template_name(task)
            # Caller-registered system prompts take precedence over the built-ins.
            if name not in self.registry:
                self.registry.register(name, body, version=self.settings.template_version)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_prompt(self, task: AnalysisTask | str, params: PromptParams | None = None) -> BuiltPrompt:
        """Assemble the prompt for ``task``.

        Args:
            task: The analysis task.
            params: Context bundle; ``None`` is treated as empty params.

        Returns:
            A ``BuiltPrompt`` with both messages and token estimate.

        Raises:
            InvalidInputError: ``task`` is not a known analysis task.
        """
        task = coerce_task(task)
        params = params or PromptParams()

        system_prompt = self._render_system(task, params.jurisdiction_focus)
        query = params.user_query or ""

        budget = max(
            0,
            self.settings.max_context_tokens
            - estimate_tokens(system_prompt)
            - estimate_tokens(query)
            - self.settings.instruction_reserve_tokens,
        )

        texts = {
            "molecule": format_molecule(params.target_molecule),
            "patents": format_patents(params.relevant_patents),
            "claims": format_claims(params.claim_analysis),
            "prior_art": format_prior_art(params.prior_art),
            "rag": format_rag(params.rag_context),
        }
        sections = [
            _Section(key, label, texts[key], estimate_tokens(texts[key]))
            for key, label in SECTION_LABELS
        ]
        truncated = fit_sections(sections, budget)

        blocks = [f"## {s.label}\n{s.text}\n\n" for s in sections if s.text.strip()]
        blocks.append(f"## Instructions\n{self._instructions(task, params)}\n\n")
        if query:
            blocks.append(f"## User Query\n{query}")
        user_prompt = "".join(blocks).rstrip("\n")

        estimated = estimate_tokens(system_prompt) + estimate_tokens(user_prompt)
        if truncated:
            logger.info(
                "Prompt for %s truncated to fit budget (budget=%d, total=%d tokens)",
                task, budget, estimated,
            )

        return BuiltPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            messages=[
                Message(role="system", content=system_prompt),
                Message(role="user", content=user_prompt),
            ],
            estimated_tokens=estimated,
            truncation_applied=truncated,
            template_version=self.settings.template_version,
        )

    def get_system_prompt(self, task: AnalysisTask | str) -> str:
        return self._render_system(coerce_task(task), [])

    def estimate_token_count(self, text: str) -> int:
        return estimate_tokens(text)

    def register_template(self, name: str, body: str, version: str | None = None) -> TemplateInfo:
        return self.registry.register(name, body, version=version)

    def render_template(self, name: str, data: Any = None) -> str:
        return self.registry.render(name, data)

    def list_templates(self) -> list[TemplateInfo]:
        return self.registry.list()

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _render_system(self, task: AnalysisTask, jurisdictions: list[str]) -> str:
        return self.registry.render(
            system_template_name(task),
            {"task": task.value, "jurisdictions": [j.upper() for j in jurisdictions]},
        ).strip()

    def _instructions(self, task: AnalysisTask, params: PromptParams) -> str:
        parts = [
            TASK_INSTRUCTIONS[task],
            FORMAT_INSTRUCTIONS[OutputFormat(params.output_format or OutputFormat.NARRATIVE)],
            language_instruction(params.language or self.settings.default_language),
            DETAIL_INSTRUCTIONS[DetailLevel(params.detail_level or DetailLevel.STANDARD)],
            jurisdiction_instruction(params.jurisdiction_focus),
        ]
        return "\n\n".join(p for p in parts if p)
