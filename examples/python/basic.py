#!/usr/bin/env python3
"""Classify plain, compressed and random 4 KB chunks with chunk-entropy.

Usage:
    pip install -e .
    python examples/python/basic.py
"""

import os
import zlib

from chunk_entropy import CHUNK_SIZE, EntropyClassifier, __version__, chunk_statistic

print(f"chunk-entropy v{__version__}")

text = (b"The quick brown fox jumps over the lazy dog. " * 200)[:CHUNK_SIZE]
packed = zlib.compress(os.urandom(512) + text * 8, 9)
samples = {
    "plain text": text,
    "zlib output": (packed * (CHUNK_SIZE // len(packed) + 1))[:CHUNK_SIZE],
    "os.urandom": os.urandom(CHUNK_SIZE),
}

raw = EntropyClassifier()

print(f"\n{'Sample':<14} {'Sum':>12} {'Chi2':>10} {'P-value':>9}  Verdict")
print("-" * 60)
for name, data in samples.items():
    s = chunk_statistic(data)
    verdict = raw.judge(s)
    print(f"{name:<14} {s.chi_sq_sum:>12,} {s.normalized:>10.1f} {s.p_value:>9.4f}  {verdict.value}")
