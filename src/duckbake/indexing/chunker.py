"""
Chunking utilities for splitting document content before embedding.
"""

from __future__ import annotations

import uuid
from typing import Callable, Iterator

from ..storage.base import ChunkType, DocumentChunk

MAX_CHUNK_SIZE = 1000
MIN_CHUNK_SIZE = 100

_SECTION_KINDS = frozenset({"md", "markdown"})
_PARAGRAPH_SEPARATOR = "\n\n"


def _new_chunk_id() -> str:
    return str(uuid.uuid4())


def _paragraph_spans(content: str) -> Iterator[tuple[int, int]]:
    start = 0
    while True:
        boundary = content.find(_PARAGRAPH_SEPARATOR, start)
        if boundary == -1:
            yield start, len(content)
            return
        yield start, boundary
        start = boundary + len(_PARAGRAPH_SEPARATOR)


def _line_spans(content: str) -> Iterator[tuple[int, str]]:
    start = 0
    for raw in content.split("\n"):
        yield start, raw.rstrip("\r")
        start += len(raw) + 1


class DocumentChunker:
    """
    Deterministic document chunker.

    Markdown is split into heading-delimited sections; everything else is
    split on blank lines and packed into paragraph chunks. Chunk offsets are
    character positions into the original content and tile it without gaps:
    the first chunk starts at 0 and the last one ends at ``len(content)``.
    """

    def __init__(
        self,
        max_chunk_size: int = MAX_CHUNK_SIZE,
        min_chunk_size: int = MIN_CHUNK_SIZE,
        id_factory: Callable[[], str] = _new_chunk_id,
    ) -> None:
        if max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be > 0")
        if min_chunk_size < 0:
            raise ValueError("min_chunk_size must be >= 0")
        if min_chunk_size >= max_chunk_size:
            raise ValueError("min_chunk_size must be smaller than max_chunk_size")

        self.max_chunk_size = max_chunk_size
        self.min_chunk_size = min_chunk_size
        self._id_factory = id_factory

    def chunk_document(
        self, document_id: str, content: str, content_kind: str = "txt"
    ) -> list[DocumentChunk]:
        """Split a document with the strategy matching its content kind."""
        if not content.strip():
            return []
        if content_kind.lower().lstrip(".") in _SECTION_KINDS:
            spans = self._section_spans(content)
            chunk_type: ChunkType = "section"
        else:
            spans = self._paragraph_spans(content)
            chunk_type = "paragraph"

        return [
            DocumentChunk(
                id=self._id_factory(),
                document_id=document_id,
                chunk_index=index,
                chunk_type=chunk_type,
                content=text,
                start_offset=start,
                end_offset=end,
            )
            for index, (start, end, text) in enumerate(spans)
        ]

    def _paragraph_spans(self, content: str) -> list[tuple[int, int, str]]:
        spans: list[tuple[int, int, str]] = []
        buffer = ""
        chunk_start = 0

        for para_start, para_end in _paragraph_spans(content):
            paragraph = content[para_start:para_end].strip()
            if not paragraph:
                continue

            if buffer and len(buffer) + len(_PARAGRAPH_SEPARATOR) + len(paragraph) > self.max_chunk_size:
                spans.append((chunk_start, para_start, buffer))
                chunk_start = para_start
                buffer = ""

            buffer = f"{buffer}{_PARAGRAPH_SEPARATOR}{paragraph}" if buffer else paragraph

        if not buffer:
            return spans

        if len(buffer) >= self.min_chunk_size or not spans:
            spans.append((chunk_start, len(content), buffer))
        else:
            # Too small to stand alone: fold the tail into the previous chunk.
            prev_start, _, prev_text = spans[-1]
            spans[-1] = (
                prev_start,
                len(content),
                f"{prev_text}{_PARAGRAPH_SEPARATOR}{buffer}",
            )
        return spans

    def _section_spans(self, content: str) -> list[tuple[int, int, str]]:
        spans: list[tuple[int, int, str]] = []
        buffer = ""
        chunk_start = 0

        for line_start, line in _line_spans(content):
            is_heading = line.startswith("#")

            if is_heading and buffer.strip():
                spans.append((chunk_start, line_start, buffer.strip()))
                chunk_start = line_start
                buffer = ""
            elif (
                not is_heading
                and buffer
                and len(buffer) + len(line) + 1 > self.max_chunk_size
            ):
                if buffer.strip():
                    spans.append((chunk_start, line_start, buffer.strip()))
                    chunk_start = line_start
                buffer = ""

            buffer = f"{buffer}\n{line}" if buffer else line

        if buffer.strip():
            spans.append((chunk_start, len(content), buffer.strip()))
        elif spans:
            prev_start, _, prev_text = spans[-1]
            spans[-1] = (prev_start, len(content), prev_text)

        if not spans:
            spans.append((0, len(content), content.strip()))
        return spans


def chunk_document(
    document_id: str, content: str, content_kind: str = "txt"
) -> list[DocumentChunk]:
    """Chunk a document with the default size thresholds."""
    return DocumentChunker().chunk_document(document_id, content, content_kind)
