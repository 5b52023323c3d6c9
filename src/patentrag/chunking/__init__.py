"""Patent-aware document chunking."""

from patentrag.chunking.base import BaseChunker
from patentrag.chunking.paragraph_chunker import ParagraphChunker
from patentrag.chunking.patent_chunker import PatentChunker
from patentrag.chunking.schemas import DocumentChunk

__all__ = ["BaseChunker", "DocumentChunk", "ParagraphChunker", "PatentChunker"]
