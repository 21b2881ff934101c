from .facade import Chunk, ChunkingResult, ChunkStrategy, TextChunker
from .splitter_strategies import (
    FixedWindowSplitter,
    GreedySegmentPacker,
    ParagraphSplitter,
    SentenceSplitter,
)
from .token_estimator import estimate_tokens
