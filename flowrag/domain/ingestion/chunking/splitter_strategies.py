import re
from dataclasses import dataclass
from typing import Iterable

from flowrag.domain.ingestion.chunking.token_estimator import estimate_tokens, tokens_to_chars


@dataclass(frozen=True)
class TextSegment:
    """A trimmed piece of the source text with its [start, end) span."""

    content: str
    start: int
    end: int

    @property
    def tokens(self) -> int:
        return estimate_tokens(self.content)


@dataclass(frozen=True)
class ChunkWindow:
    content: str
    start: int
    end: int


def _split_with_spans(text: str, boundary: re.Pattern[str], base_offset: int = 0) -> list[TextSegment]:
    segments: list[TextSegment] = []
    cursor = 0

    def _append(piece: str, piece_start: int) -> None:
        content = piece.strip()
        if not content:
            return
        leading = len(piece) - len(piece.lstrip())
        start = base_offset + piece_start + leading
        segments.append(TextSegment(content=content, start=start, end=start + len(content)))

    for match in boundary.finditer(text):
        _append(text[cursor : match.start()], cursor)
        cursor = match.end()
    _append(text[cursor:], cursor)
    return segments


class SentenceSplitter:
    # Terminal punctuation followed by whitespace closes a sentence.
    _boundary = re.compile(r"(?<=[.!?])\s+")

    def split(self, text: str, base_offset: int = 0) -> list[TextSegment]:
        return _split_with_spans(text, self._boundary, base_offset)


class ParagraphSplitter:
    _boundary = re.compile(r"\n\s*\n")

    def __init__(self, sentence_splitter: SentenceSplitter | None = None):
        self.sentence_splitter = sentence_splitter or SentenceSplitter()

    def split(self, text: str, base_offset: int = 0) -> list[TextSegment]:
        return _split_with_spans(text, self._boundary, base_offset)

    def split_bounded(self, text: str, max_paragraph_tokens: float) -> list[TextSegment]:
        """Paragraph segments, with paragraphs above `max_paragraph_tokens` broken into sentences."""
        segments: list[TextSegment] = []
        for paragraph in self.split(text):
            if paragraph.tokens > max_paragraph_tokens:
                segments.extend(self.sentence_splitter.split(paragraph.content, paragraph.start))
            else:
                segments.append(paragraph)
        return segments


class FixedWindowSplitter:
    def split(self, text: str, target_tokens: int, overlap_tokens: int) -> list[ChunkWindow]:
        char_size = tokens_to_chars(target_tokens)
        stride = char_size - tokens_to_chars(overlap_tokens)
        if stride <= 0:
            stride = char_size

        windows: list[ChunkWindow] = []
        position = 0
        while position < len(text):
            end = min(position + char_size, len(text))
            raw = text[position:end]
            content = raw.strip()
            if content:
                start = position + (len(raw) - len(raw.lstrip()))
                windows.append(ChunkWindow(content=content, start=start, end=start + len(content)))
            position += stride
        return windows


class GreedySegmentPacker:
    """
    Packs ordered segments into windows of roughly `target_tokens`.

    A window is sealed when the next segment would push it past the target. With
    boundary preservation and a positive overlap, the next window is seeded with the
    longest proper suffix of the sealed window whose estimate fits the overlap.
    """

    def pack(
        self,
        segments: Iterable[TextSegment],
        target_tokens: int,
        overlap_tokens: int,
        preserve_boundaries: bool,
    ) -> list[ChunkWindow]:
        windows: list[ChunkWindow] = []
        buffer: list[TextSegment] = []
        buffer_tokens = 0

        for segment in segments:
            segment_tokens = segment.tokens
            if buffer and buffer_tokens + segment_tokens > target_tokens:
                windows.append(self._seal(buffer))
                buffer = (
                    self._overlap_tail(buffer, overlap_tokens)
                    if preserve_boundaries and overlap_tokens > 0
                    else []
                )
                buffer_tokens = sum(item.tokens for item in buffer)
                # Carried-over overlap is dropped when it cannot share a window with
                # the incoming segment.
                if buffer and buffer_tokens + segment_tokens > target_tokens:
                    buffer = []
                    buffer_tokens = 0

            buffer.append(segment)
            buffer_tokens += segment_tokens

        if buffer:
            windows.append(self._seal(buffer))
        return windows

    @staticmethod
    def _seal(buffer: list[TextSegment]) -> ChunkWindow:
        return ChunkWindow(
            content=" ".join(item.content for item in buffer),
            start=buffer[0].start,
            end=buffer[-1].end,
        )

    @staticmethod
    def _overlap_tail(sealed: list[TextSegment], overlap_tokens: int) -> list[TextSegment]:
        tail: list[TextSegment] = []
        total = 0
        for segment in reversed(sealed[1:]):
            if total + segment.tokens > overlap_tokens:
                break
            tail.insert(0, segment)
            total += segment.tokens
        return tail
