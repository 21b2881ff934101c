from enum import Enum
from typing import List, Optional

import structlog
from pydantic import BaseModel, Field, model_validator

from flowrag.domain.ingestion.chunking.splitter_strategies import (
    ChunkWindow,
    FixedWindowSplitter,
    GreedySegmentPacker,
    ParagraphSplitter,
    SentenceSplitter,
)
from flowrag.domain.ingestion.chunking.token_estimator import estimate_tokens

logger = structlog.get_logger(__name__)

# Paragraphs larger than this multiple of the target are broken into sentences.
PARAGRAPH_SPLIT_FACTOR = 1.5


class ChunkStrategy(str, Enum):
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    FIXED = "fixed"
    SEMANTIC = "semantic"


class Chunk(BaseModel):
    """
    Validated chunk output. Offsets index into the original source text.
    """

    content: str = Field(min_length=1)
    index: int = Field(ge=0)
    token_count: int = Field(ge=0)
    start_offset: int = Field(ge=0)
    end_offset: int = Field(ge=0)

    @model_validator(mode="after")
    def _validate_char_window(self) -> "Chunk":
        if self.end_offset < self.start_offset:
            raise ValueError("end_offset must not precede start_offset")
        return self


class ChunkingResult(BaseModel):
    chunks: List[Chunk] = Field(default_factory=list)
    strategy: ChunkStrategy
    total_chunks: int = 0
    total_tokens: int = 0


class TextChunker:
    def __init__(
        self,
        *,
        sentence_splitter: Optional[SentenceSplitter] = None,
        paragraph_splitter: Optional[ParagraphSplitter] = None,
        fixed_splitter: Optional[FixedWindowSplitter] = None,
        packer: Optional[GreedySegmentPacker] = None,
    ):
        self.sentence_splitter = sentence_splitter or SentenceSplitter()
        self.paragraph_splitter = paragraph_splitter or ParagraphSplitter(self.sentence_splitter)
        self.fixed_splitter = fixed_splitter or FixedWindowSplitter()
        self.packer = packer or GreedySegmentPacker()

    def chunk(
        self,
        text: str,
        strategy: ChunkStrategy | str = ChunkStrategy.PARAGRAPH,
        target_tokens: int = 500,
        overlap_tokens: int = 0,
        preserve_boundaries: bool = True,
    ) -> List[Chunk]:
        """
        Splits `text` into ordered chunks of roughly `target_tokens` estimated tokens.

        Every non-whitespace character of the input lands in at least one chunk.
        Blank input yields an empty list.
        """
        resolved = ChunkStrategy(strategy)
        if int(target_tokens) < 1:
            raise ValueError("target_tokens must be at least 1")
        target = int(target_tokens)
        overlap = max(0, int(overlap_tokens or 0))
        source = str(text or "")
        if not source.strip():
            return []

        if resolved == ChunkStrategy.FIXED:
            windows = self.fixed_splitter.split(source, target, overlap)
        elif resolved == ChunkStrategy.SENTENCE:
            windows = self.packer.pack(
                self.sentence_splitter.split(source), target, overlap, preserve_boundaries
            )
        elif resolved == ChunkStrategy.PARAGRAPH:
            segments = self.paragraph_splitter.split_bounded(source, target * PARAGRAPH_SPLIT_FACTOR)
            windows = self.packer.pack(segments, target, overlap, preserve_boundaries)
        else:
            # Semantic: paragraph structure first, sentences for anything over target,
            # overlap always aligned to segment boundaries.
            segments = self.paragraph_splitter.split_bounded(source, target)
            windows = self.packer.pack(segments, target, overlap, True)

        chunks = self._to_chunks(windows)
        logger.debug(
            "text_chunked",
            strategy=resolved.value,
            source_chars=len(source),
            chunk_count=len(chunks),
            target_tokens=target,
            overlap_tokens=overlap,
        )
        return chunks

    def chunk_with_summary(
        self,
        text: str,
        strategy: ChunkStrategy | str = ChunkStrategy.PARAGRAPH,
        target_tokens: int = 500,
        overlap_tokens: int = 0,
        preserve_boundaries: bool = True,
    ) -> ChunkingResult:
        chunks = self.chunk(text, strategy, target_tokens, overlap_tokens, preserve_boundaries)
        return ChunkingResult(
            chunks=chunks,
            strategy=ChunkStrategy(strategy),
            total_chunks=len(chunks),
            total_tokens=sum(chunk.token_count for chunk in chunks),
        )

    @staticmethod
    def _to_chunks(windows: List[ChunkWindow]) -> List[Chunk]:
        return [
            Chunk(
                content=window.content,
                index=position,
                token_count=estimate_tokens(window.content),
                start_offset=window.start,
                end_offset=window.end,
            )
            for position, window in enumerate(windows)
        ]
