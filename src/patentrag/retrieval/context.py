"""Token-budgeted context assembly from retrieved chunks."""

from __future__ import annotations

from patentrag.documents.schemas import SourceType
from patentrag.retrieval.schemas import RetrievedChunk
from patentrag.tokens import estimate_tokens, truncate_to_tokens

# Below this many remaining tokens a partial entry is not worth including.
MIN_PARTIAL_TOKENS = 20

TRUNCATION_MARKER = "..."


def source_annotation(chunk: RetrievedChunk) -> str:
    """Short human-readable label for a chunk, e.g. ``Patent US123, Claim 4``."""
    meta = chunk.metadata
    doc_id = chunk.document_id

    if chunk.source_type == SourceType.PATENT:
        label = f"Patent {meta.get('patent_number') or doc_id}"
        if meta.get("claim_number"):
            label += f", Claim {meta['claim_number']}"
        elif meta.get("section"):
            label += f", {meta['section']}"
        return label

    if chunk.source_type == SourceType.CASE_LAW:
        return f"Case: {meta.get('case_name') or meta.get('title') or doc_id}"

    if chunk.source_type == SourceType.EXAMINATION_GUIDELINE:
        if meta.get("section_ref"):
            return f"MPEP §{meta['section_ref']}"
        return f"Examination Guideline: {doc_id}"

    if chunk.source_type == SourceType.SCIENTIFIC_PAPER:
        return f"Paper: {meta.get('title') or doc_id}"

    if chunk.source_type == SourceType.REGULATORY:
        if meta.get("regulation_ref"):
            return f"Regulation: {meta['regulation_ref']}"
        return f"Regulatory: {doc_id}"

    return f"Source: {chunk.source or meta.get('source') or 'unknown'} ({doc_id})"


def format_entry(chunk: RetrievedChunk) -> str:
    return f"[{source_annotation(chunk)}]\n{chunk.content}\n\n"


def truncate_entry(chunk: RetrievedChunk, max_tokens: int) -> str:
    """Best-effort shortened entry that fits in ``max_tokens``; empty if none fits."""
    header = f"[{source_annotation(chunk)}]\n"
    available = max_tokens - estimate_tokens(header) - estimate_tokens(TRUNCATION_MARKER)
    if available <= 0:
        return ""

    body = truncate_to_tokens(chunk.content, available).rstrip()
    if not body:
        return ""
    return f"{header}{body}{TRUNCATION_MARKER}"


def build_context(chunks: list[RetrievedChunk], budget: int) -> str:
    """Greedily pack chunks, best first, into a context string within ``budget`` tokens.

    When the next entry overflows and more than ``MIN_PARTIAL_TOKENS``
    remain, a truncated version of it is appended and packing stops.
    """
    if budget <= 0 or not chunks:
        return ""

    ordered = sorted(chunks, key=lambda c: c.effective_score, reverse=True)
    parts: list[str] = []
    used = 0

    for chunk in ordered:
        entry = format_entry(chunk)
        tokens = estimate_tokens(entry)
        if used + tokens <= budget:
            parts.append(entry)
            used += tokens
            continue

        remaining = budget - used
        if remaining > MIN_PARTIAL_TOKENS:
            partial = truncate_entry(chunk, remaining)
            if partial:
                parts.append(partial)
        break

    return "".join(parts).strip()
