"""
Chunker Tests

Covers token budgeting, overlap seeding, paragraph -> sentence -> word
degradation, character spans and empty input.
"""

import pytest

from course_rag.chunking.chunker import Chunk, chunk_text, estimate_token_count


def _paragraph(tag: str, words: int) -> str:
    return " ".join(f"{tag}w{i}" for i in range(words))


def _is_within_budget(chunk: Chunk, max_tokens: int) -> bool:
    return len(chunk.text.split()) == 1 or estimate_token_count(chunk.text) <= max_tokens


class TestTokenEstimate:
    def test_word_count_times_factor_rounded_up(self):
        assert estimate_token_count("one two three") == 4  # 3.9
        assert estimate_token_count("one two three four five") == 7  # 6.5

    def test_whitespace_runs_are_ignored(self):
        assert estimate_token_count("  one \n\n two\tthree  ") == 4

    def test_empty(self):
        assert estimate_token_count("") == 0
        assert estimate_token_count("   ") == 0


class TestEmptyInput:
    @pytest.mark.parametrize("text", ["", "   ", "\n\n\t  \n"])
    def test_returns_no_chunks(self, text):
        assert chunk_text(text) == []


class TestParagraphAccumulation:
    def test_small_document_is_one_chunk(self):
        text = "Hello world.\n\nSecond paragraph here."
        chunks = chunk_text(text)

        assert len(chunks) == 1
        assert chunks[0].text == "Hello world.\n\nSecond paragraph here."
        assert chunks[0].index == 0
        assert chunks[0].token_count == 7
        assert chunks[0].metadata.start_char == 0
        assert chunks[0].metadata.end_char == len(text)

    def test_week_example_with_tiny_budget(self):
        text = "Week 1: intro to recursion.\n\nWeek 2: sorting algorithms and complexity."
        chunks = chunk_text(text, max_tokens=10, overlap_tokens=2)

        assert [c.text for c in chunks] == [
            "Week 1: intro to recursion.",
            "recursion. Week 2: sorting algorithms and complexity.",
        ]
        assert [c.token_count for c in chunks] == [7, 10]

    def test_overlap_between_budget_flushes(self):
        paragraphs = [_paragraph(f"p{i}", 30) for i in range(6)]
        chunks = chunk_text("\n\n".join(paragraphs), max_tokens=100, overlap_tokens=5)

        assert len(chunks) == 3
        for previous, current in zip(chunks, chunks[1:]):
            assert current.text.split()[:5] == previous.text.split()[-5:]

    def test_overlap_is_shortened_to_respect_budget(self):
        # Second paragraph alone is 70 words (91 tokens); only 6 seed words fit.
        text = _paragraph("a", 70) + "\n\n" + _paragraph("b", 70)
        chunks = chunk_text(text, max_tokens=100, overlap_tokens=20)

        assert len(chunks) == 2
        seed = chunks[1].text.split()[:6]
        assert seed == chunks[0].text.split()[-6:]
        assert chunks[1].text.split()[6] == "bw0"
        assert estimate_token_count(chunks[1].text) <= 100

    def test_indices_are_sequential(self):
        paragraphs = [_paragraph(f"p{i}", n) for i, n in enumerate([40, 120, 15, 300, 80])]
        chunks = chunk_text("\n\n".join(paragraphs), max_tokens=100, overlap_tokens=10)

        assert [c.index for c in chunks] == list(range(len(chunks)))


class TestBudgetAndCoverage:
    def test_every_chunk_respects_budget_and_every_word_is_kept(self):
        sizes = [40, 120, 15, 300, 80, 10, 700]
        paragraphs = [_paragraph(f"p{i}", n) for i, n in enumerate(sizes)]
        text = "\n\n".join(paragraphs)

        chunks = chunk_text(text, max_tokens=100, overlap_tokens=10)

        assert all(_is_within_budget(c, 100) for c in chunks)
        emitted = {word for c in chunks for word in c.text.split()}
        assert set(text.split()) <= emitted
        assert all(c.token_count == estimate_token_count(c.text) for c in chunks)

    def test_long_paragraph_degrades_to_sentences(self):
        sentences = [f"Sentence{i} " + " ".join(["word"] * 8) + "." for i in range(200)]
        paragraph = " ".join(sentences)
        assert len(paragraph.split()) == 1800

        chunks = chunk_text(paragraph, max_tokens=500, overlap_tokens=50)

        assert len(chunks) > 1
        assert all(estimate_token_count(c.text) <= 500 for c in chunks)
        # Sentence-level chunks end on a sentence boundary
        assert all(c.text.endswith(".") for c in chunks)

    def test_long_unpunctuated_paragraph_degrades_to_words(self):
        paragraph = _paragraph("x", 2000)

        chunks = chunk_text(paragraph, max_tokens=500, overlap_tokens=50)

        assert len(chunks) > 1
        assert all(estimate_token_count(c.text) <= 500 for c in chunks)
        assert chunks[0].text.split()[0] == "xw0"
        assert chunks[-1].text.split()[-1] == "xw1999"

    def test_word_longer_than_budget_is_emitted_alone(self):
        chunks = chunk_text("alpha beta", max_tokens=1, overlap_tokens=1)

        assert [c.text for c in chunks] == ["alpha", "beta"]
        assert all(c.token_count == 2 for c in chunks)


class TestCharacterSpans:
    def test_sentence_chunks_locate_their_source(self):
        text = "First sentence here. Second one follows. Third is last."
        chunks = chunk_text(text, max_tokens=5, overlap_tokens=1)

        assert [c.text for c in chunks] == [
            "First sentence here.",
            "Second one follows.",
            "Third is last.",
        ]
        for c in chunks:
            assert text[c.metadata.start_char:c.metadata.end_char] == c.text

    def test_leading_whitespace_is_counted_in_offsets(self):
        text = "\n\n  Only paragraph."
        chunks = chunk_text(text)

        assert len(chunks) == 1
        span = chunks[0].metadata
        assert text[span.start_char:span.end_char] == "Only paragraph."

    def test_spans_are_ordered_and_non_negative(self):
        paragraphs = [_paragraph(f"p{i}", 30) for i in range(6)]
        chunks = chunk_text("\n\n".join(paragraphs), max_tokens=100, overlap_tokens=5)

        for c in chunks:
            assert 0 <= c.metadata.start_char <= c.metadata.end_char
