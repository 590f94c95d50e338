"""
Sentence-aware text chunking for summarization.

Long transcripts are split into sentences, which are then packed into
chunks no longer than a character budget. A sentence is never split: a
sentence longer than the budget occupies a chunk of its own.
"""

import re
from typing import List, Tuple

from ..models import TextChunk

DEFAULT_MAX_CHUNK_LENGTH = 1000

SENTENCE_SEPARATOR = ". "

# Terminal punctuation followed by whitespace, or closing the text
SENTENCE_BOUNDARY = re.compile(r"[.!?]+(?:\s+|$)")


def split_sentences(text: str) -> List[Tuple[str, int, int]]:
    """
    Split text into stripped, non-empty sentences.

    Returns:
        List of (sentence, start_offset, end_offset) tuples
    """
    sentences = []
    position = 0
    for match in SENTENCE_BOUNDARY.finditer(text):
        _append_sentence(text, position, match.start(), sentences)
        position = match.end()
    _append_sentence(text, position, len(text), sentences)
    return sentences


def _append_sentence(text: str, start: int, end: int, sentences: List[Tuple[str, int, int]]) -> None:
    raw = text[start:end]
    sentence = raw.strip()
    if not sentence:
        return
    sentence_start = start + len(raw) - len(raw.lstrip())
    sentences.append((sentence, sentence_start, sentence_start + len(sentence)))


def chunk_text(text: str, max_chunk_length: int = DEFAULT_MAX_CHUNK_LENGTH) -> List[TextChunk]:
    """
    Split text into ordered, bounded-length, sentence-respecting chunks.

    Sentences are joined with ". " inside a chunk. A new chunk is started
    when appending the next sentence would exceed max_chunk_length and the
    current chunk is not empty. Text without sentence boundaries becomes a
    single chunk.

    Args:
        text: Text to split
        max_chunk_length: Character budget per chunk

    Returns:
        List of chunks; empty only for empty or whitespace-only text
    """
    groups: List[Tuple[str, int, int]] = []
    buffer = ""
    span_start = span_end = 0

    for sentence, start, end in split_sentences(text):
        if buffer and len(buffer) + len(SENTENCE_SEPARATOR) + len(sentence) > max_chunk_length:
            groups.append((buffer, span_start, span_end))
            buffer = sentence
            span_start = start
        elif buffer:
            buffer = f"{buffer}{SENTENCE_SEPARATOR}{sentence}"
        else:
            buffer = sentence
            span_start = start
        span_end = end

    if buffer:
        groups.append((buffer, span_start, span_end))

    if not groups:
        stripped = text.strip()
        if not stripped:
            return []
        start = text.find(stripped)
        return [TextChunk(index=0, text=stripped, start_offset=start, end_offset=start + len(stripped))]

    return _locate_chunks(text, groups)


def _locate_chunks(text: str, groups: List[Tuple[str, int, int]]) -> List[TextChunk]:
    """
    Compute chunk offsets within the original text.

    Each chunk is looked up at or after the end of the previous one, so
    repeated passages resolve in order. Chunks whose joined text does not
    occur literally (e.g. "!" rewritten to ". ") fall back to the span of
    their sentences.
    """
    chunks = []
    cursor = 0
    for index, (chunk, span_start, span_end) in enumerate(groups):
        found = text.find(chunk, cursor)
        if found >= 0:
            start, end = found, found + len(chunk)
        else:
            start = max(span_start, cursor)
            end = max(span_end, start)
        chunks.append(TextChunk(index=index, text=chunk, start_offset=start, end_offset=end))
        cursor = end
    return chunks
