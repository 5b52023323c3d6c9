"""Patent-aware chunker.

Separates the description from the claims section. The description goes
through the paragraph chunker; every claim becomes its own chunk tagged
with ``section=claims`` and its ``claim_number``.
"""

from __future__ import annotations

import logging
import re

from patentrag.chunking.paragraph_chunker import ParagraphChunker, split_paragraphs
from patentrag.chunking.schemas import DocumentChunk
from patentrag.documents.schemas import Document, SourceType

logger = logging.getLogger(__name__)

# Claims heading at the start of a line, English or Chinese. The first claim
# may follow on the same line; bare "Claims" then needs a colon.
_CLAIMS_MARKER = re.compile(
    r"^[ \t]*(?:(?:What is claimed is|We claim)[ \t]*[:：]?"
    r"|(?:CLAIMS|Claims|权利要求书|权利要求)[ \t]*(?:[:：]|$))[ \t]*",
    re.MULTILINE,
)

# Leading claim number: "1.", "2、", "3．", "4)"; a following digit means a decimal.
_CLAIM_NUMBER = re.compile(r"^[ \t]*(\d+)[ \t]*[.、．)](?!\d)", re.MULTILINE)


def find_claims_start(text: str) -> tuple[int, int] | None:
    """Return ``(marker_start, claims_start)`` for the claims heading, if any."""
    m = _CLAIMS_MARKER.search(text)
    if m is None:
        return None
    return m.start(), m.end()


def split_claims(text: str) -> list[str]:
    """Split a claims section into individual claims.

    Only sequentially numbered markers (1, 2, 3, ...) start a new claim, so
    a stray number at the start of a line inside a claim does not split it.
    Falls back to blank-line splitting when no numbered claims are found.
    """
    starts: list[int] = []
    for m in _CLAIM_NUMBER.finditer(text):
        if int(m.group(1)) == len(starts) + 1:
            starts.append(m.start())

    if not starts:
        return split_paragraphs(text)

    claims = []
    for i, start in enumerate(starts):
        end = starts[i + 1] if i + 1 < len(starts) else len(text)
        claim = text[start:end].strip()
        if claim:
            claims.append(claim)
    return claims


class PatentChunker(ParagraphChunker):
    """Chunker for patent documents."""

    def chunk(self, document: Document) -> list[DocumentChunk]:
        if document.source_type != SourceType.PATENT:
            return super().chunk(document)
        if not document.content or not document.content.strip():
            return []

        text = document.content
        bounds = find_claims_start(text)
        if bounds is None:
            description, claims_text = text, ""
        else:
            description, claims_text = text[: bounds[0]], text[bounds[1]:]

        doc_id = document.document_id
        chunks: list[DocumentChunk] = []

        for i, piece in enumerate(self.split_text(description)):
            chunks.append(self._make_chunk(
                document, f"{doc_id}-desc-{i}", piece, len(chunks),
                {"section": "description"},
            ))
        n_desc = len(chunks)

        for n, claim in enumerate(split_claims(claims_text), 1):
            chunks.append(self._make_chunk(
                document, f"{doc_id}-claim-{n}", claim, len(chunks),
                {"section": "claims", "claim_number": str(n)},
            ))

        logger.info(
            "PatentChunker produced %d description + %d claim chunks (doc=%s)",
            n_desc, len(chunks) - n_desc, doc_id,
        )
        return chunks
