"""Chunker factory — dispatch on source type to the right chunker."""

from __future__ import annotations

import importlib
import logging

from patentrag.chunking.base import BaseChunker
from patentrag.documents.schemas import SourceType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Chunker registry
#
# Each entry: (source_type, module_path, class_name)
# ---------------------------------------------------------------------------

_CHUNKER_REGISTRY: list[tuple[SourceType, str, str]] = [
    (SourceType.PATENT, "patentrag.chunking.patent_chunker", "PatentChunker"),
]

# Singleton cache
_chunker_cache: dict[SourceType, BaseChunker] = {}


def get_chunker(source_type: SourceType = SourceType.OTHER, **kwargs) -> BaseChunker:
    """Get a chunker for the given source type.

    Falls back to ``ParagraphChunker`` for types without a dedicated
    chunker.
    """
    if not kwargs and source_type in _chunker_cache:
        return _chunker_cache[source_type]

    for registered_type, module_path, cls_name in _CHUNKER_REGISTRY:
        if registered_type == source_type:
            mod = importlib.import_module(module_path)
            cls = getattr(mod, cls_name)
            instance = cls(**kwargs)
            if not kwargs:
                _chunker_cache[source_type] = instance
            return instance

    logger.debug("No specific chunker for %s, using ParagraphChunker", source_type)
    from patentrag.chunking.paragraph_chunker import ParagraphChunker

    instance = ParagraphChunker(**kwargs)
    if not kwargs:
        _chunker_cache[source_type] = instance
    return instance


def available_chunkers() -> list[str]:
    """Return source types with a dedicated chunker."""
    return [st.value for st, _, _ in _CHUNKER_REGISTRY]


def clear_cache() -> None:
    """Clear singleton cache (for testing)."""
    _chunker_cache.clear()
