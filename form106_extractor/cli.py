"""CLI interface for Form 106 ingestion"""
import json
import logging
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import click

from .config import MAX_FILE_SIZE_BYTES, OCR_DPI, OCR_LANGUAGES, OCR_TIMEOUT_S
from .extractor import IngestionPipeline, IngestionResult, IngestOptions
from .ocr_extractor import OcrOptions


def collect_pdf_files(path: Path) -> List[Path]:
    """A single file, or every PDF directly inside a folder"""
    if path.is_file():
        return [path]
    return sorted(p for p in path.iterdir() if p.is_file() and p.suffix.lower() == ".pdf")


def process_pdf_file(pipeline: IngestionPipeline,
                     pdf_path: Path,
                     options: IngestOptions,
                     output_dir: Optional[Path] = None) -> IngestionResult:
    """Ingest a single PDF file and report the outcome"""
    click.echo(f"Processing: {pdf_path.name}")

    start_ts = time.perf_counter()
    result = pipeline.ingest(pdf_path, options)
    elapsed_s = time.perf_counter() - start_ts

    if output_dir:
        output_path = output_dir / f"{pdf_path.stem}_results.json"
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
        click.echo(f"  Results saved to: {output_path}")

    if result.success:
        click.echo(f"  Time: {elapsed_s:.2f}s | Method: {result.extraction_method.value}")
        for warning in result.warnings:
            click.echo(f"  Warning: {warning}", err=True)
    else:
        error = result.error
        click.echo(
            f"  Failed at {error.stage.value}: {error.code.value} - {error.message} ({elapsed_s:.2f}s)",
            err=True,
        )
    return result


@click.command()
@click.argument("pdf_path", type=click.Path(exists=True, path_type=Path))
@click.option("--output-dir", "-o",
              type=click.Path(file_okay=False, path_type=Path),
              help="Directory to save extraction results")
@click.option("--password", "-p", default=None,
              help="Password for encrypted PDFs")
@click.option("--ocr/--no-ocr", "enable_ocr", default=False, show_default=True,
              help="Fall back to OCR for scanned or garbled PDFs")
@click.option("--lang", "-l", "languages", multiple=True,
              help=f"OCR language (repeatable) [default: {'+'.join(OCR_LANGUAGES)}]")
@click.option("--dpi", type=click.IntRange(min=72), default=OCR_DPI, show_default=True,
              help="Rasterization DPI for OCR")
@click.option("--timeout", "timeout_s", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Text extraction timeout in seconds")
@click.option("--ocr-timeout", "ocr_timeout_s", type=click.FloatRange(min=0, min_open=True),
              default=OCR_TIMEOUT_S, show_default=True,
              help="Total OCR budget in seconds")
@click.option("--max-size-mb", type=click.FloatRange(min=0, min_open=True),
              default=MAX_FILE_SIZE_BYTES / 1024 / 1024, show_default=True,
              help="Maximum accepted file size")
@click.option("--verbose", "-v", is_flag=True,
              help="Verbose output")
def main(pdf_path: Path, output_dir: Optional[Path], password: Optional[str], enable_ocr: bool,
         languages: Tuple[str, ...], dpi: int, timeout_s: Optional[float], ocr_timeout_s: float,
         max_size_mb: float, verbose: bool):
    """
    Extract the seven mandatory Form 106 fields from PDFs.

    PDF_PATH: A PDF file, or a folder containing PDF files

    Examples:

    \b
    # Text layer only
    form106-extract statements/ --output-dir results

    \b
    # Allow OCR for scanned statements
    form106-extract scan.pdf --ocr --lang heb --lang eng --dpi 400
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    pdf_files = collect_pdf_files(pdf_path)
    if not pdf_files:
        click.echo(f"No PDF files found in {pdf_path}", err=True)
        sys.exit(1)
    click.echo(f"Found {len(pdf_files)} PDF file(s)")

    if output_dir:
        output_dir.mkdir(parents=True, exist_ok=True)

    options = IngestOptions(
        password=password,
        timeout_s=timeout_s,
        enable_ocr_fallback=enable_ocr,
        ocr=OcrOptions(
            languages=tuple(languages) or OCR_LANGUAGES,
            dpi=dpi,
            timeout_s=ocr_timeout_s,
        ),
        max_file_size_bytes=int(max_size_mb * 1024 * 1024),
    )

    pipeline = IngestionPipeline()
    all_results: Dict[str, dict] = {}
    failures = 0
    for pdf_file in pdf_files:
        result = process_pdf_file(pipeline, pdf_file, options, output_dir)
        all_results[pdf_file.name] = result.to_dict()
        if not result.success:
            failures += 1
        elif verbose:
            click.echo("  Extracted values:")
            for field_name, value in result.data.to_dict().items():
                click.echo(f"    {field_name}: {value}")

    click.echo(f"\nProcessed {len(pdf_files)} PDF(s): {len(pdf_files) - failures} succeeded, {failures} failed")

    if output_dir and all_results:
        combined_path = output_dir / "all_results.json"
        with open(combined_path, "w", encoding="utf-8") as f:
            json.dump(all_results, f, indent=2, ensure_ascii=False)
        click.echo(f"Combined results saved to: {combined_path}")

    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
