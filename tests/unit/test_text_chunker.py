from __future__ import annotations

import math

import pytest

from flowrag.domain.ingestion.chunking import ChunkStrategy, TextChunker, estimate_tokens

SAMPLE = (
    "Retrieval augmented generation grounds answers in documents. It needs good chunks!\n\n"
    "Chunks should respect sentence boundaries. Otherwise context gets cut mid-thought? "
    "Overlap keeps neighbouring ideas together.\n\n"
    "Short paragraph."
)


def _words(text: str) -> set[str]:
    return set(text.split())


def test_estimate_tokens_is_ceil_of_quarter_length() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abc") == 1
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_three_short_sentences_fit_in_one_chunk() -> None:
    chunks = TextChunker().chunk("A. B. C.", strategy="sentence", target_tokens=500)

    assert len(chunks) == 1
    assert chunks[0].content == "A. B. C."
    assert chunks[0].token_count == 2
    assert (chunks[0].start_offset, chunks[0].end_offset) == (0, 8)


@pytest.mark.parametrize("strategy", list(ChunkStrategy))
def test_every_word_is_covered_and_token_counts_match(strategy: ChunkStrategy) -> None:
    chunks = TextChunker().chunk(SAMPLE, strategy=strategy, target_tokens=12, overlap_tokens=4)

    assert chunks
    covered = "".join(chunk.content for chunk in chunks)
    for character in SAMPLE:
        if not character.isspace():
            assert character in covered
    if strategy != ChunkStrategy.FIXED:
        assert _words(SAMPLE) <= set().union(*(_words(chunk.content) for chunk in chunks))
    for position, chunk in enumerate(chunks):
        assert chunk.index == position
        assert chunk.token_count == math.ceil(len(chunk.content) / 4)


@pytest.mark.parametrize("strategy", list(ChunkStrategy))
def test_offsets_are_monotonic(strategy: ChunkStrategy) -> None:
    chunks = TextChunker().chunk(SAMPLE, strategy=strategy, target_tokens=10, overlap_tokens=3)

    starts = [chunk.start_offset for chunk in chunks]
    assert starts == sorted(starts)
    for chunk in chunks:
        assert 0 <= chunk.start_offset <= chunk.end_offset <= len(SAMPLE)


def test_sentence_overlap_seeds_next_chunk_with_trailing_sentence() -> None:
    text = "Alpha one. Beta two. Gamma three. Delta four."

    chunks = TextChunker().chunk(text, strategy="sentence", target_tokens=6, overlap_tokens=3)

    assert [chunk.content for chunk in chunks] == [
        "Alpha one. Beta two.",
        "Beta two. Gamma three.",
        "Gamma three. Delta four.",
    ]
    assert chunks[1].start_offset < chunks[0].end_offset
    assert chunks[1].start_offset == text.index("Beta")


def test_overlap_requires_boundary_preservation() -> None:
    text = "Alpha one. Beta two. Gamma three. Delta four."

    chunks = TextChunker().chunk(
        text, strategy="sentence", target_tokens=6, overlap_tokens=3, preserve_boundaries=False
    )

    assert [chunk.content for chunk in chunks] == ["Alpha one. Beta two.", "Gamma three. Delta four."]


def test_fixed_windows_slice_the_source_text() -> None:
    text = "x" * 100

    chunks = TextChunker().chunk(text, strategy="fixed", target_tokens=5, overlap_tokens=1)

    assert [chunk.start_offset for chunk in chunks] == [0, 16, 32, 48, 64, 80, 96]
    for chunk in chunks:
        assert text[chunk.start_offset : chunk.end_offset] == chunk.content
    assert chunks[-1].content == "xxxx"


def test_fixed_overlap_not_smaller_than_window_still_terminates() -> None:
    text = "y" * 100

    chunks = TextChunker().chunk(text, strategy="fixed", target_tokens=5, overlap_tokens=10)

    assert len(chunks) == 5
    assert len(chunks) <= math.ceil(len(text) / 20) + 1


def test_paragraph_strategy_splits_only_oversized_paragraphs() -> None:
    long_paragraph = " ".join(f"Sentence number {i} is here." for i in range(12))
    text = f"Tiny intro.\n\n{long_paragraph}"

    chunks = TextChunker().chunk(text, strategy="paragraph", target_tokens=20, overlap_tokens=0)

    assert chunks[0].content.startswith("Tiny intro.")
    assert all(chunk.token_count <= 20 for chunk in chunks)
    assert len(chunks) > 2


def test_blank_text_yields_no_chunks() -> None:
    assert TextChunker().chunk("   \n\n  ", strategy="paragraph") == []


def test_target_tokens_must_be_positive() -> None:
    with pytest.raises(ValueError, match="target_tokens"):
        TextChunker().chunk("Some text.", target_tokens=0)


def test_summary_totals_match_chunks() -> None:
    result = TextChunker().chunk_with_summary(SAMPLE, strategy="semantic", target_tokens=15, overlap_tokens=0)

    assert result.total_chunks == len(result.chunks)
    assert result.total_tokens == sum(chunk.token_count for chunk in result.chunks)
