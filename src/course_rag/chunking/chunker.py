"""
Document Chunker

Splits the plain text of a course document into ordered, token-bounded,
overlapping chunks ready for embedding.

Segmentation Strategy
---------------------
- Paragraphs (blank-line separated) are the preferred unit and are never
  split when they fit the token budget.
- A paragraph over budget is split into sentences, and a sentence over
  budget into words. A single word is never split, even when it alone
  exceeds the budget.
- Every flush seeds the next chunk with the trailing words of the flushed
  chunk, shortened when needed so the next chunk stays within budget.

Token counts use a word-count heuristic (words x 1.3, rounded up) rather than
a real tokenizer. Chunk boundaries depend on it, so it must not be swapped.
"""

from __future__ import annotations

import logging
import math
import re
from typing import List, NamedTuple, Pattern

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("rag.chunker")

TOKENS_PER_WORD = 1.3

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")
_WORD = re.compile(r"\S+")


# ---------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------

class ChunkSpan(BaseModel):
    """
    Approximate character offsets of a chunk within its source text.

    Offsets are locators, not exact slices: overlap text prepended to a chunk
    does not come from one contiguous span.
    """

    start_char: int = Field(..., ge=0)
    end_char: int = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)


class Chunk(BaseModel):
    """A contiguous (or overlap-prefixed) span of a document's text."""

    text: str = Field(..., min_length=1)
    index: int = Field(..., ge=0)
    token_count: int = Field(..., ge=0)
    metadata: ChunkSpan

    model_config = ConfigDict(frozen=True)


class _Segment(NamedTuple):
    text: str
    start: int
    end: int


# ---------------------------------------------------------------------
# Token Estimation
# ---------------------------------------------------------------------

def _tokens_for(word_count: int) -> int:
    return math.ceil(word_count * TOKENS_PER_WORD)


def estimate_token_count(text: str) -> int:
    """
    Estimate the token count of ``text`` as ``ceil(words * 1.3)``.

    Words are runs of non-whitespace characters.
    """
    return _tokens_for(len(text.split()))


# ---------------------------------------------------------------------
# Segmentation Helpers
# ---------------------------------------------------------------------

def _split_segments(text: str, boundary: Pattern[str], offset: int = 0) -> List[_Segment]:
    """
    Split ``text`` on ``boundary`` into trimmed, non-empty segments.

    Segment offsets are absolute (shifted by ``offset``).
    """
    segments: List[_Segment] = []
    pos = 0
    bounds = [(m.start(), m.end()) for m in boundary.finditer(text)]
    bounds.append((len(text), len(text)))

    for cut_start, cut_end in bounds:
        raw = text[pos:cut_start]
        stripped = raw.strip()
        if stripped:
            start = offset + pos + (len(raw) - len(raw.lstrip()))
            segments.append(_Segment(stripped, start, start + len(stripped)))
        pos = cut_end

    return segments


def _split_words(text: str, offset: int = 0) -> List[_Segment]:
    return [
        _Segment(m.group(), offset + m.start(), offset + m.end())
        for m in _WORD.finditer(text)
    ]


# ---------------------------------------------------------------------
# Accumulator
# ---------------------------------------------------------------------

class _ChunkAccumulator:
    """
    Running buffer shared by all segmentation levels.

    The buffer is an overlap seed (words carried over from the previous
    chunk) followed by a body of whole units. Only the body counts as new
    content: a buffer holding nothing but a seed is never emitted.
    """

    def __init__(self, max_tokens: int, overlap_tokens: int) -> None:
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens
        self.chunks: List[Chunk] = []

        self._seed: List[str] = []
        self._body = ""
        self._body_words = 0
        self._start = 0
        self._end = 0

    # -- unit entry points ------------------------------------------------

    def add_paragraph(self, paragraph: _Segment) -> None:
        if estimate_token_count(paragraph.text) <= self.max_tokens:
            self._append(paragraph, "\n\n")
            return

        self._flush()
        for sentence in _split_segments(paragraph.text, _SENTENCE_BREAK, paragraph.start):
            self.add_sentence(sentence)

    def add_sentence(self, sentence: _Segment) -> None:
        if estimate_token_count(sentence.text) <= self.max_tokens:
            self._append(sentence, " ")
            return

        self._flush()
        for word in _split_words(sentence.text, sentence.start):
            self.add_word(word)

    def add_word(self, word: _Segment) -> None:
        if estimate_token_count(word.text) <= self.max_tokens:
            self._append(word, " ")
            return

        # Cannot split below a word: emit it alone, without a seed.
        self._flush()
        self._seed = []
        self._body = word.text
        self._body_words = 1
        self._start, self._end = word.start, word.end
        self._flush()

    def finish(self) -> List[Chunk]:
        self._flush()
        return self.chunks

    # -- buffer management ------------------------------------------------

    def _append(self, segment: _Segment, separator: str) -> None:
        words = len(segment.text.split())

        if self._body and _tokens_for(
            len(self._seed) + self._body_words + words
        ) > self.max_tokens:
            self._flush()

        if not self._body:
            self._fit_seed(words)
            self._body = segment.text
            self._body_words = words
            self._start = segment.start
        else:
            self._body = f"{self._body}{separator}{segment.text}"
            self._body_words += words

        self._end = segment.end

    def _fit_seed(self, incoming_words: int) -> None:
        """Drop leading seed words until seed + incoming unit fit the budget."""
        keep = len(self._seed)
        while keep and _tokens_for(keep + incoming_words) > self.max_tokens:
            keep -= 1
        self._seed = self._seed[len(self._seed) - keep:] if keep else []

    def _flush(self) -> None:
        if not self._body:
            return

        start = self._start
        if self._seed:
            seed_text = " ".join(self._seed)
            text = f"{seed_text} {self._body}"
            start = max(0, start - len(seed_text) - 1)
        else:
            text = self._body

        self.chunks.append(
            Chunk(
                text=text,
                index=len(self.chunks),
                token_count=estimate_token_count(text),
                metadata=ChunkSpan(start_char=start, end_char=max(start, self._end)),
            )
        )

        self._seed = text.split()[-self.overlap_tokens:] if self.overlap_tokens > 0 else []
        self._body = ""
        self._body_words = 0


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def chunk_text(
    text: str,
    max_tokens: int = 500,
    overlap_tokens: int = 50,
) -> List[Chunk]:
    """
    Split a document into ordered, overlapping chunks.

    Parameters
    ----------
    text : str
        Plain document text. Whitespace-only text yields no chunks.

    max_tokens : int
        Soft token budget per chunk. Only a single word longer than the
        budget may exceed it.

    overlap_tokens : int
        Maximum number of trailing words of a flushed chunk repeated at the
        start of the next one. Should be smaller than ``max_tokens``; larger
        values are shortened to whatever still fits.

    Returns
    -------
    List[Chunk]
        Chunks in document order, indexed from 0.
    """
    cleaned = text.strip()
    if not cleaned:
        return []

    offset = len(text) - len(text.lstrip())
    accumulator = _ChunkAccumulator(max_tokens, overlap_tokens)

    for paragraph in _split_segments(cleaned, _PARAGRAPH_BREAK, offset):
        accumulator.add_paragraph(paragraph)

    chunks = accumulator.finish()
    logger.debug(
        "Chunked %d chars into %d chunks (max_tokens=%d, overlap_tokens=%d)",
        len(text),
        len(chunks),
        max_tokens,
        overlap_tokens,
    )
    return chunks
