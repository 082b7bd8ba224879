"""Report formatting for chunk-entropy scans."""

from __future__ import annotations

import platform
from datetime import datetime
from pathlib import Path

from chunk_entropy.classifier import CHUNK_SIZE, Verdict
from chunk_entropy.scanner import ChunkSummary, ScanResult, ScanStatus

HIGH_ENTROPY_LABEL = "[!] HIGH ENTROPY (Encrypted)"
STRUCTURED_LABEL = "[+] STRUCTURED (Safe)"


def verdict_label(verdict: Verdict) -> str:
    return HIGH_ENTROPY_LABEL if verdict is Verdict.HIGH_ENTROPY else STRUCTURED_LABEL


def _size_label(chunk_size: int) -> str:
    if chunk_size % 1024 == 0:
        return f"{chunk_size // 1024}KB"
    return f"{chunk_size}-byte"


def format_result(result: ScanResult, chunk_size: int = CHUNK_SIZE) -> str:
    """One human-readable line per scanned file."""
    if result.status is ScanStatus.MISSING:
        return f"File {result.path} not found. Skipping..."
    if result.status is ScanStatus.TOO_SMALL:
        return f"File {result.path} too small for {_size_label(chunk_size)} test."
    if result.status is ScanStatus.UNREADABLE:
        return f"File {result.path} unreadable ({result.detail}). Skipping..."
    return f"File: {result.path:<20} | Result: {verdict_label(result.verdict)}"


def format_summary(summary: ChunkSummary) -> str:
    return (
        f"{summary.path}: {summary.high_entropy}/{summary.total} chunks high-entropy "
        f"({summary.fraction:.1%}, chunk={summary.chunk_size}B)"
    )


def _fmt(value, spec: str) -> str:
    return "N/A" if value is None else format(value, spec)


def generate_report(results: list[ScanResult], output_path: str | Path | None = None) -> str:
    """Generate a Markdown report for *results*, optionally writing it to disk."""
    now = datetime.now()
    classified = [r for r in results if r.classified]
    high = sum(1 for r in classified if r.verdict is Verdict.HIGH_ENTROPY)

    lines = [
        "# Chunk Entropy Scan Report",
        "",
        f"**Generated:** {now.strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Machine:** {platform.node()} ({platform.machine()}, {platform.system()} {platform.release()})",
        f"**Files:** {len(results)} | **Classified:** {len(classified)} | **High entropy:** {high}",
        "",
        "| # | File | Offset | Status | Verdict | Chi-square sum | Normalized | P-Value |",
        "|---|------|--------|--------|---------|----------------|------------|---------|",
    ]

    for i, r in enumerate(results, 1):
        stat = r.statistic
        verdict = r.verdict.value if r.verdict is not None else "-"
        lines.append(
            f"| {i} | {r.path} | {r.offset} | {r.status.value} | {verdict} "
            f"| {_fmt(stat and stat.chi_sq_sum, ',')} "
            f"| {_fmt(stat and stat.normalized, '.2f')} "
            f"| {_fmt(stat and stat.p_value, '.6f')} |"
        )
    lines.append("")

    report = "\n".join(lines)

    if output_path:
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report)

    return report
