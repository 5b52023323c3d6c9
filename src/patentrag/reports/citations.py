"""Citation extraction, classification and verification.

Extraction runs one regex per numbering scheme, in declaration order,
keeping the first occurrence of each normalized source.
"""

from __future__ import annotations

import asyncio
import logging
import re

from patentrag.reports.schemas import (
    Citation,
    CitationSourceType,
    CitationVerificationSummary,
    VerificationStatus,
)
from patentrag.retrieval.engine import RAGEngine
from patentrag.retrieval.schemas import RAGQuery

logger = logging.getLogger(__name__)

# (name, pattern) in extraction order
CITATION_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("us_patent", re.compile(r"\bUS[ -]?(?:\d{4}/\d{7}|\d{1,2},\d{3},\d{3}|\d{6,11})(?:\s?[AB]\d)?\b")),
    ("cn_patent", re.compile(r"\bCN[ -]?\d{9,12}(?:\.\d)?(?:\s?[ABUY]\d?)?\b")),
    ("ep_patent", re.compile(r"\bEP[ -]?\d{7}(?:\s?[AB]\d)?\b")),
    ("wo_patent", re.compile(r"\bWO[ -]?(?:\d{4}/\d{6}|\d{10})(?:\s?A\d)?\b")),
    ("jp_patent", re.compile(r"\bJP[ -]?(?:\d{4}-?\d{6}|\d{7})(?:\s?[AB]\d?)?\b")),
    ("mpep", re.compile(r"\bMPEP\s*§*\s*\d{3,4}(?:\.\d{2})?(?:\([a-zA-Z0-9]+\))*")),
    ("usc", re.compile(r"\b\d{1,2}\s*U\.\s?S\.\s?C\.\s*§*\s*\d+[a-z]?(?:\([a-zA-Z0-9]+\))*")),
    (
        "case_law",
        re.compile(
            r"\b[A-Z][\w.&'-]*(?: [A-Z][\w.&'-]*)* v\. [A-Z][\w.&'-]*(?: [A-Z][\w.&'-]*)*,"
            r"\s*\d+\s+(?:U\.S\.|F\.(?:2d|3d|4th)|USPQ2d)\s+\d+"
        ),
    ),
]

_PATENT_PREFIX = re.compile(r"^(?:US|CN|EP|WO|JP|KR)[ -]?\d")


def normalize_source(source: str) -> str:
    """Canonical form used for de-duplication: upper case, no spaces, commas, § or dashes."""
    return re.sub(r"[\s,§\-]", "", source.upper())


def classify_citation_source(source: str) -> CitationSourceType:
    upper = source.strip().upper()
    if upper.startswith("MPEP"):
        return CitationSourceType.MPEP
    if "U.S.C" in upper or "USC §" in upper:
        return CitationSourceType.STATUTE
    if " V. " in upper:
        return CitationSourceType.CASE_LAW
    if _PATENT_PREFIX.match(upper):
        return CitationSourceType.PATENT
    return CitationSourceType.OTHER


def _patent_url(source: str) -> str:
    return "https://patents.google.com/patent/" + re.sub(r"[\s,/\-]", "", source.upper())


def extract_citations(text: str) -> list[Citation]:
    """Find every distinct citation in ``text``."""
    if not text:
        return []

    seen: set[str] = set()
    citations: list[Citation] = []
    for _, pattern in CITATION_PATTERNS:
        for m in pattern.finditer(text):
            source = m.group(0).strip()
            key = normalize_source(source)
            if key in seen:
                continue
            seen.add(key)

            source_type = classify_citation_source(source)
            citations.append(Citation(
                citation_id=f"cite-{len(citations) + 1}",
                source=source,
                source_type=source_type,
                url=_patent_url(source) if source_type == CitationSourceType.PATENT else None,
            ))
    return citations


def summarize_verification(citations: list[Citation]) -> CitationVerificationSummary:
    counts = {status: 0 for status in VerificationStatus}
    for c in citations:
        counts[c.verification_status] += 1
    return CitationVerificationSummary(
        total=len(citations),
        verified_count=counts[VerificationStatus.VERIFIED],
        not_found_count=counts[VerificationStatus.NOT_FOUND],
        unverified_count=counts[VerificationStatus.UNVERIFIED],
    )


async def verify_citations(
    citations: list[Citation],
    engine: RAGEngine,
    timeout: float = 3.0,
    match_threshold: float = 0.7,
) -> CitationVerificationSummary:
    """Look up each citation in the knowledge base concurrently.

    A hit scoring at or above ``match_threshold`` verifies the citation.
    Otherwise patents become ``NOT_FOUND`` and everything else stays
    ``UNVERIFIED``. Each lookup is bounded by ``timeout`` seconds; a timed
    out or failed lookup counts as no match.
    """
    lock = asyncio.Lock()

    async def _verify(citation: Citation) -> None:
        if citation.verification_status == VerificationStatus.VERIFIED:
            return

        matched: str | None = None
        try:
            result = await asyncio.wait_for(
                engine.retrieve(RAGQuery(
                    query_text=citation.source,
                    top_k=3,
                    similarity_threshold=match_threshold,
                )),
                timeout,
            )
            best = max(result.chunks, key=lambda c: c.score, default=None)
            if best is not None and best.score >= match_threshold:
                matched = best.document_id
        except TimeoutError:
            logger.debug("Citation lookup timed out: %s", citation.source)
        except Exception as exc:  # noqa: BLE001 - verification is best-effort
            logger.warning("Citation lookup failed for %s: %s", citation.source, exc)

        async with lock:
            if matched is not None:
                citation.mark(VerificationStatus.VERIFIED, matched)
            elif citation.source_type == CitationSourceType.PATENT:
                citation.mark(VerificationStatus.NOT_FOUND)

    await asyncio.gather(*(_verify(c) for c in citations))

    summary = summarize_verification(citations)
    logger.info(
        "Verified citations: %d/%d verified, %d not found",
        summary.verified_count, summary.total, summary.not_found_count,
    )
    return summary
