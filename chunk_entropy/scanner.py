"""File glue: read chunks from disk and hand them to the classifier.

Missing or unreadable files and files shorter than one chunk are
skipped with a diagnostic instead of raising, so one bad path never
stops a scan over many.  Short files are never padded or rescaled.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from os import PathLike
from typing import Iterator, Sequence

from chunk_entropy.classifier import CHUNK_SIZE, ChunkStatistic, EntropyClassifier, Verdict

log = logging.getLogger(__name__)


class ScanStatus(Enum):
    CLASSIFIED = "classified"
    MISSING = "missing"
    TOO_SMALL = "too-small"
    UNREADABLE = "unreadable"


@dataclass
class ScanResult:
    """Outcome of classifying one chunk of one file."""

    path: str
    status: ScanStatus
    verdict: Verdict | None = None
    statistic: ChunkStatistic | None = None
    bytes_read: int = 0
    offset: int = 0
    detail: str = ""

    @property
    def classified(self) -> bool:
        return self.status is ScanStatus.CLASSIFIED


@dataclass
class ChunkSummary:
    """Per-chunk results for a whole file."""

    path: str
    chunk_size: int
    results: list[ScanResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def high_entropy(self) -> int:
        return sum(1 for r in self.results if r.verdict is Verdict.HIGH_ENTROPY)

    @property
    def fraction(self) -> float:
        return self.high_entropy / self.total if self.total else 0.0


def read_chunk(path: str | PathLike, chunk_size: int = CHUNK_SIZE, offset: int = 0) -> bytes:
    """Read up to *chunk_size* bytes starting at *offset*."""
    with open(path, "rb") as f:
        if offset:
            f.seek(offset)
        return f.read(chunk_size)


def iter_chunks(path: str | PathLike, chunk_size: int = CHUNK_SIZE) -> Iterator[tuple[int, bytes]]:
    """Yield ``(offset, chunk)`` for every full chunk; a trailing partial chunk is dropped."""
    offset = 0
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            if len(chunk) < chunk_size:
                log.debug("%s: dropping %d-byte tail at offset %d", path, len(chunk), offset)
                break
            yield offset, chunk
            offset += chunk_size


def _classified(path: str, data: bytes, offset: int, classifier: EntropyClassifier) -> ScanResult:
    stat = classifier.measure(data)
    verdict = classifier.judge(stat)
    log.debug("%s@%d: chi_sq_sum=%s verdict=%s", path, offset, stat.chi_sq_sum, verdict.value)
    return ScanResult(
        path=path,
        status=ScanStatus.CLASSIFIED,
        verdict=verdict,
        statistic=stat,
        bytes_read=len(data),
        offset=offset,
    )


def scan_file(path: str | PathLike, classifier: EntropyClassifier | None = None) -> ScanResult:
    """Classify the first chunk of *path*."""
    classifier = classifier or EntropyClassifier()
    path = str(path)
    try:
        data = read_chunk(path, classifier.chunk_size)
    except FileNotFoundError:
        log.warning("%s not found, skipping", path)
        return ScanResult(path=path, status=ScanStatus.MISSING, detail="not found")
    except OSError as e:
        log.warning("cannot read %s: %s", path, e)
        return ScanResult(path=path, status=ScanStatus.UNREADABLE, detail=str(e))

    if len(data) < classifier.chunk_size:
        log.info("%s: %d bytes, need %d, skipping", path, len(data), classifier.chunk_size)
        return ScanResult(
            path=path,
            status=ScanStatus.TOO_SMALL,
            bytes_read=len(data),
            detail=f"need {classifier.chunk_size}, got {len(data)}",
        )
    return _classified(path, data, 0, classifier)


def scan_chunks(path: str | PathLike, classifier: EntropyClassifier | None = None) -> ChunkSummary:
    """Classify every full chunk of *path* independently.

    Raises ``OSError`` if the file cannot be opened.
    """
    classifier = classifier or EntropyClassifier()
    path = str(path)
    summary = ChunkSummary(path=path, chunk_size=classifier.chunk_size)
    for offset, chunk in iter_chunks(path, classifier.chunk_size):
        summary.results.append(_classified(path, chunk, offset, classifier))
    log.info("%s: %d/%d chunks high-entropy", path, summary.high_entropy, summary.total)
    return summary


def scan_paths(
    paths: Sequence[str | PathLike],
    classifier: EntropyClassifier | None = None,
    parallel: bool = False,
    timeout: float = 10.0,
) -> list[ScanResult]:
    """Scan each path's first chunk; results keep the order of *paths*.

    Parameters
    ----------
    parallel:
        If True, scan all paths concurrently using threads.
    timeout:
        Overall deadline in seconds (parallel mode only).  Paths still
        pending when it expires are reported as unreadable.
    """
    classifier = classifier or EntropyClassifier()
    if not parallel:
        return [scan_file(p, classifier) for p in paths]

    results: list[ScanResult | None] = [None] * len(paths)

    def _worker(i: int, p) -> None:
        results[i] = scan_file(p, classifier)

    threads = []
    for i, p in enumerate(paths):
        t = threading.Thread(target=_worker, args=(i, p), daemon=True)
        t.start()
        threads.append(t)

    deadline = time.monotonic() + timeout
    for t in threads:
        remaining = max(0.1, deadline - time.monotonic())
        t.join(timeout=remaining)

    out = []
    for p, r in zip(paths, results):
        if r is None:
            log.warning("%s: scan timed out", p)
            r = ScanResult(path=str(p), status=ScanStatus.UNREADABLE, detail="timed out")
        out.append(r)
    return out
