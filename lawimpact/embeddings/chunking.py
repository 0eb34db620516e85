"""
Text normalization and chunking ahead of embedding.

Statute and ordinance text is CJK-dense, so token counts are estimated as
characters / 4 rather than with a tokenizer. Chunks follow paragraph
boundaries first and fall back to sentence boundaries for long paragraphs.
"""
from __future__ import annotations

import math
import re
from typing import Iterator

CHARS_PER_TOKEN = 4

_INLINE_WHITESPACE = re.compile(r"[^\S\n]+")
_SPACE_AROUND_NEWLINE = re.compile(r" ?\n ?")
_NEWLINE_RUN = re.compile(r"\n+")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
# Split after terminal punctuation, keeping the punctuation with its sentence
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


def normalize(text: str) -> str:
    """
    Collapse whitespace runs to one space and newline runs to one newline.

    Idempotent: ``normalize(normalize(t)) == normalize(t)``.
    """
    text = _INLINE_WHITESPACE.sub(" ", text)
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)
    text = _NEWLINE_RUN.sub("\n", text)
    return text.strip()


def estimate_tokens(text: str) -> int:
    """Approximate token count for CJK-heavy text."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _accumulate(pieces: list[str], joiner: str, max_tokens: int) -> Iterator[tuple[str, bool]]:
    """
    Greedily pack pieces into chunks under max_tokens.

    Yields (chunk, fits) pairs; ``fits`` is False for a single piece that is
    larger than the budget on its own.
    """
    current = ""
    for piece in pieces:
        candidate = f"{current}{joiner}{piece}" if current else piece
        if estimate_tokens(candidate) <= max_tokens:
            current = candidate
            continue
        if current:
            yield current, True
        current = piece
        if estimate_tokens(piece) > max_tokens:
            yield piece, False
            current = ""
    if current:
        yield current, True


def chunk(text: str, max_tokens: int = 8000) -> Iterator[str]:
    """
    Split text into chunks whose estimated token count fits ``max_tokens``.

    Paragraphs (blank-line separated) are packed together; a paragraph that is
    too long on its own is split on sentence boundaries with the same packing
    rule. A single sentence longer than the budget is emitted as-is.

    Text that fits is yielded once, normalized. Never raises and always
    yields at least one chunk.
    """
    max_tokens = max(1, int(max_tokens))
    stripped = text.strip() if text else ""

    normalized = normalize(stripped)
    if estimate_tokens(normalized) <= max_tokens:
        yield normalized
        return

    paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(stripped) if p.strip()]
    produced = False
    for block, fits in _accumulate(paragraphs, "\n\n", max_tokens):
        if fits:
            produced = True
            yield block
            continue
        sentences = [s for s in _SENTENCE_BREAK.split(block) if s]
        for sentence_block, _ in _accumulate(sentences, " ", max_tokens):
            produced = True
            yield sentence_block

    if not produced:
        yield stripped


def chunk_text(text: str, max_tokens: int = 8000) -> list[str]:
    """List form of :func:`chunk`."""
    return list(chunk(text, max_tokens))
