"""CLI for chunk-entropy."""

from __future__ import annotations

import functools
import logging
import sys

import click

from chunk_entropy import __version__
from chunk_entropy.classifier import CHUNK_SIZE, EntropyClassifier


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Log per-file and per-chunk details to stderr.")
def main(verbose: bool) -> None:
    """chunk-entropy: chi-square test for encrypted or compressed data."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
            stream=sys.stderr,
        )


def _classifier_options(fn):
    """Options shared by every command that builds an EntropyClassifier."""

    @click.option("--chunk-size", default=CHUNK_SIZE, show_default=True, type=click.IntRange(min=1),
                  envvar="CHUNK_ENTROPY_CHUNK_SIZE", help="Bytes per chunk.")
    @click.option("--threshold", default=None, type=click.FloatRange(min=0, min_open=True),
                  envvar="CHUNK_ENTROPY_THRESHOLD",
                  help="Cut at --chunk-size (default 10000 raw scaled to the chunk size, 625 normalized).")
    @click.option("--normalized", is_flag=True, help="Compare sum/E instead of the raw sum.")
    @functools.wraps(fn)
    def wrapper(*args, chunk_size: int, threshold: float | None, normalized: bool, **kwargs):
        try:
            clf = EntropyClassifier(chunk_size=chunk_size, threshold=threshold, normalized=normalized)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--threshold")
        return fn(*args, classifier=clf, **kwargs)

    return wrapper


# ────────────────────────────────────────────────────────────
# Commands
# ────────────────────────────────────────────────────────────


@main.command()
@click.argument("source", type=click.File("rb"), default="-")
@click.option("--reference", is_flag=True,
              help="Treat empty input as high-entropy, as module-level classify() does.")
@_classifier_options
def classify(source, reference: bool, classifier: EntropyClassifier) -> None:
    """Classify up to one chunk read from SOURCE (default: stdin).

    Input shorter than the chunk size is classified against a threshold
    scaled to its length.
    """
    if reference:
        classifier.empty_verdict = None
    data = source.read(classifier.chunk_size)
    verdict = classifier.classify(data)
    click.echo(verdict.value)


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.option("--all-chunks", is_flag=True, help="Classify every full chunk, not just the first.")
@click.option("--parallel", is_flag=True, help="Scan files concurrently.")
@click.option("--output", "output_path", default=None, type=click.Path(dir_okay=False),
              help="Write a Markdown report to this path.")
@_classifier_options
def scan(paths: tuple[str, ...], all_chunks: bool, parallel: bool, output_path: str | None,
         classifier: EntropyClassifier) -> None:
    """Classify the first chunk of each file in PATHS.

    Examples:

        chunk-entropy scan base_text.txt sample_image.jpg encrypted.bin

        chunk-entropy scan --all-chunks --output report.md disk.img
    """
    from chunk_entropy.report import format_result, format_summary, generate_report, verdict_label
    from chunk_entropy.scanner import ScanResult, ScanStatus, scan_chunks, scan_paths

    if all_chunks and parallel:
        raise click.UsageError("--parallel cannot be combined with --all-chunks.")

    click.echo("Running Entropy Detection Test...")
    click.echo("-" * 50)

    if all_chunks:
        results = []
        for p in paths:
            try:
                summary = scan_chunks(p, classifier)
            except FileNotFoundError:
                skipped = ScanResult(path=p, status=ScanStatus.MISSING, detail="not found")
            except OSError as e:
                skipped = ScanResult(path=p, status=ScanStatus.UNREADABLE, detail=str(e.strerror or e))
            else:
                if summary.total:
                    for r in summary.results:
                        click.echo(f"  {r.offset:>12,}  {r.statistic.chi_sq_sum:>14,}  {verdict_label(r.verdict)}")
                    click.echo(format_summary(summary))
                    results.extend(summary.results)
                    continue
                skipped = ScanResult(path=p, status=ScanStatus.TOO_SMALL,
                                     detail=f"no full {classifier.chunk_size}-byte chunk")
            click.echo(format_result(skipped, classifier.chunk_size))
            results.append(skipped)
    else:
        results = scan_paths(list(paths), classifier, parallel=parallel)
        for r in results:
            click.echo(format_result(r, classifier.chunk_size))

    if output_path:
        generate_report(results, output_path)
        click.echo(f"\nReport saved to: {output_path}")


@main.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--offset", default=0, type=click.IntRange(min=0), help="Byte offset of the chunk.")
@_classifier_options
def stat(path: str, offset: int, classifier: EntropyClassifier) -> None:
    """Show the chi-square statistic for one chunk of PATH."""
    from chunk_entropy.scanner import read_chunk

    try:
        data = read_chunk(path, classifier.chunk_size, offset)
    except OSError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    s = classifier.measure(data)
    verdict = classifier.judge(s)
    p_str = f"{s.p_value:.6f}" if s.p_value is not None else "N/A"
    click.echo(f"File: {path} @ {offset:,}")
    click.echo(f"  Bytes:           {s.length:,} / {classifier.chunk_size:,}")
    click.echo(f"  Expected/bucket: {s.expected}")
    click.echo(f"  Chi-square sum:  {s.chi_sq_sum:,}")
    click.echo(f"  Normalized:      {s.normalized:.2f} (255 df)")
    click.echo(f"  P-value:         {p_str}")
    click.echo(f"  Threshold:       {classifier.effective_threshold(s.length):,}"
               f"{' (normalized)' if classifier.normalized else ''}")
    click.echo(f"  Verdict:         {verdict.value}")
    if s.length < classifier.chunk_size:
        click.echo("  Note: short chunk, threshold scaled to its length")
