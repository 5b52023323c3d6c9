"""Token-aware paragraph chunker for generic text.

Accumulates paragraphs until the next one would overflow the chunk size,
then flushes and seeds the next chunk with the tail of the previous one.
Paragraphs that are too large on their own are split into sentences and
run through the same accumulate/flush loop.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator

from patentrag.chunking.base import BaseChunker
from patentrag.chunking.schemas import DocumentChunk
from patentrag.documents.schemas import Document
from patentrag.tokens import estimate_tokens, tail_tokens, truncate_to_tokens

logger = logging.getLogger(__name__)

CHUNK_SIZE = 512
CHUNK_OVERLAP = 64

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")

# ASCII terminators need trailing whitespace or end of text; CJK
# terminators end a sentence on their own.
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])(?:\s+|$)|(?<=[。！？])\s*")


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines, dropping empty paragraphs."""
    return [p.strip() for p in _PARAGRAPH_SPLIT.split(text) if p.strip()]


def split_sentences(text: str) -> list[str]:
    """Split on ``.``, ``。``, ``!``, ``?`` sentence boundaries."""
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s and s.strip()]


class ParagraphChunker(BaseChunker):
    """Chunker for generic documents (case law, guidelines, papers, ...)."""

    def __init__(self, chunk_size: int = CHUNK_SIZE, chunk_overlap: int = CHUNK_OVERLAP):
        if chunk_size <= 0:
            chunk_size = CHUNK_SIZE
        if chunk_overlap < 0:
            chunk_overlap = 0
        if chunk_overlap >= chunk_size:
            chunk_overlap = chunk_size // 4
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def chunk(self, document: Document) -> list[DocumentChunk]:
        if not document.content or not document.content.strip():
            return []

        texts = self.split_text(document.content)
        chunks = [
            self._make_chunk(document, f"{document.document_id}-chunk-{i}", text, i)
            for i, text in enumerate(texts)
        ]

        logger.info(
            "%s produced %d chunks from %d chars (doc=%s)",
            self.strategy_name(), len(chunks), len(document.content), document.document_id,
        )
        return chunks

    # ------------------------------------------------------------------
    # Splitting
    # ------------------------------------------------------------------

    def split_text(self, text: str) -> list[str]:
        """Split ``text`` into size-bounded, overlapping chunk texts."""
        out: list[str] = []
        current = ""

        for para in split_paragraphs(text):
            if estimate_tokens(para) > self.chunk_size:
                for piece in self._sentence_pieces(para):
                    current = self._accumulate(out, current, piece, " ")
            else:
                current = self._accumulate(out, current, para, "\n\n")

        if current.strip():
            out.append(current.strip())
        return out

    def _accumulate(self, out: list[str], current: str, piece: str, sep: str) -> str:
        candidate = f"{current}{sep}{piece}" if current else piece
        if current and estimate_tokens(candidate) > self.chunk_size:
            out.append(current.strip())
            seed = tail_tokens(current, self.chunk_overlap)
            candidate = f"{seed}{sep}{piece}" if seed else piece
        return candidate

    def _sentence_pieces(self, paragraph: str) -> Iterator[str]:
        for sentence in split_sentences(paragraph):
            # A run-on sentence with no terminator is hard-cut.
            while estimate_tokens(sentence) > self.chunk_size:
                head = truncate_to_tokens(sentence, self.chunk_size)
                if not head:
                    break
                yield head
                sentence = sentence[len(head):].lstrip()
            if sentence:
                yield sentence

    @staticmethod
    def _make_chunk(
        document: Document,
        chunk_id: str,
        text: str,
        index: int,
        extra: dict[str, str] | None = None,
    ) -> DocumentChunk:
        metadata = dict(document.metadata)
        if extra:
            metadata.update(extra)
        return DocumentChunk(
            chunk_id=chunk_id,
            document_id=document.document_id,
            content=text,
            source_type=document.source_type,
            token_count=estimate_tokens(text),
            index=index,
            metadata=metadata,
        )
