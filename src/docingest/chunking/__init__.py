"""Text chunking strategies."""

from __future__ import annotations

from typing import Dict, Optional, Type

from docingest.config import Settings, settings as default_settings

from .boundaries import BoundaryAwareChunker
from .chunker import FixedSizeChunker, TextChunker, chunk_id_for, resolve_window

_CHUNKERS: Dict[str, Type[TextChunker]] = {
    FixedSizeChunker.chunker_type: FixedSizeChunker,
    BoundaryAwareChunker.chunker_type: BoundaryAwareChunker,
}


def get_chunker(chunker_type: Optional[str] = None, config: Optional[Settings] = None) -> TextChunker:
    """Build the chunker configured for ``chunker_type``."""
    config = config or default_settings
    name = chunker_type or config.chunker_type
    chunker_cls = _CHUNKERS.get(name)
    if chunker_cls is None:
        raise ValueError(f"Unknown chunker type: {name!r}")

    if chunker_cls is FixedSizeChunker:
        return FixedSizeChunker(
            config.chunk_size,
            config.chunk_overlap,
            parallel_threshold=config.parallel_chunking_threshold,
            segment_count=config.chunking_segment_count,
        )
    return chunker_cls(config.chunk_size, config.chunk_overlap)


__all__ = [
    "BoundaryAwareChunker",
    "FixedSizeChunker",
    "TextChunker",
    "chunk_id_for",
    "get_chunker",
    "resolve_window",
]
