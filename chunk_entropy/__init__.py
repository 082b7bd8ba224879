"""
chunk-entropy: is this 4 KB chunk encrypted, compressed or plain?

Counts byte values over a fixed-size chunk and compares a chi-square
style deviation from the uniform distribution against a threshold
calibrated for 4096-byte chunks.
"""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from chunk_entropy.classifier import (
    CHUNK_SIZE,
    REFERENCE_THRESHOLD,
    BufferTooShortError,
    ChunkError,
    ChunkStatistic,
    EntropyClassifier,
    InvalidLengthError,
    Verdict,
    byte_histogram,
    chi_square_sum,
    chunk_statistic,
    classify,
)

__all__ = [
    "CHUNK_SIZE",
    "REFERENCE_THRESHOLD",
    "BufferTooShortError",
    "ChunkError",
    "ChunkStatistic",
    "EntropyClassifier",
    "InvalidLengthError",
    "Verdict",
    "byte_histogram",
    "chi_square_sum",
    "chunk_statistic",
    "classify",
    "__version__",
]
