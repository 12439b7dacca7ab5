"""Window chunker that snaps cut points to nearby text boundaries."""

from __future__ import annotations

import re
from typing import List, Optional

from docingest.models import Document, TextChunk

from .chunker import TextChunker

_SENTENCE_END_RE = re.compile(r"[.!?](?=\s)")
_WHITESPACE_RE = re.compile(r"\s")


class BoundaryAwareChunker(TextChunker):
    """Fixed-size windows whose ends move back to a paragraph, sentence, or word break.

    A break is only taken when the shortened window keeps at least a quarter
    of ``chunk_size``; otherwise the hard cut is used. Windows always advance.
    """

    chunker_type = "boundary-aware"

    def _split(self, document: Document, text: str, size: int, overlap: int) -> List[TextChunk]:
        length = len(text)
        if length <= size:
            return [self._build_chunk(document, text, 0)]

        chunks: List[TextChunk] = []
        position = 0
        while position < length:
            end = min(position + size, length)
            if end < length:
                end = self._snap_end(text, position, end, size)

            chunks.append(self._build_chunk(document, text[position:end], len(chunks)))
            if end >= length:
                break

            next_position = end - overlap
            if next_position <= position:
                next_position = end
            position = next_position
        return chunks

    def _snap_end(self, text: str, start: int, end: int, size: int) -> int:
        segment = text[start:end]
        min_keep = max(1, size // 4)

        paragraph = segment.rfind("\n\n")
        if paragraph != -1 and paragraph + 2 >= min_keep:
            return start + paragraph + 2

        sentence = self._last_match_end(_SENTENCE_END_RE, segment)
        if sentence is not None and sentence >= min_keep:
            return start + sentence

        word = self._last_match_end(_WHITESPACE_RE, segment)
        if word is not None and word >= min_keep:
            return start + word

        return end

    @staticmethod
    def _last_match_end(pattern: "re.Pattern[str]", segment: str) -> Optional[int]:
        last = None
        for match in pattern.finditer(segment):
            last = match.end()
        return last
