"""
Text chunking and hierarchical summarization.
"""

from .chunker import chunk_text, split_sentences
from .hierarchical import (
    DEFAULT_CHUNK_SIZE,
    PLACEHOLDER_MARKER,
    HierarchicalSummarizer,
    compute_length_targets,
    is_placeholder,
)

__all__ = [
    "chunk_text",
    "split_sentences",
    "HierarchicalSummarizer",
    "compute_length_targets",
    "is_placeholder",
    "DEFAULT_CHUNK_SIZE",
    "PLACEHOLDER_MARKER",
]
