"""Command line entry point: analyze receipt photos and videos into a ledger bundle."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from receiptflow.ai.analysis import ReceiptAnalyzer
from receiptflow.ai.backends import SUPPORTED_BACKENDS
from receiptflow.ai.config import get_setting
from receiptflow.base.media import MediaFile
from receiptflow.base.progress import configure
from receiptflow.export.bundle import build_export_bundle, export_filename
from receiptflow.export.ledger import VOCABULARIES, get_vocabulary
from receiptflow.pipeline import AnalysisOrchestrator
from receiptflow.utils.logger import setup_logger

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="receiptflow",
        description="Analyze receipt photos (JPG/PNG/HEIC) and videos (MP4) into a journal ledger bundle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze two photos and a video with the configured backend
  receiptflow lunch.jpg taxi.png wallet.mp4

  # Use OpenAI and write the Money Forward header and labels
  receiptflow receipts/*.jpg --backend openai --vocabulary ja --output march.zip
        """,
    )
    parser.add_argument("files", nargs="+", type=Path, help="Receipt images or videos, processed in order")
    parser.add_argument("--output", "-o", type=Path, help="Path of the ZIP bundle (default: receipt_export_DATE.zip)")
    parser.add_argument("--backend", choices=SUPPORTED_BACKENDS, help="Analysis backend (default from config)")
    parser.add_argument("--model", help="Model name (uses the backend default if not specified)")
    parser.add_argument(
        "--vocabulary",
        choices=sorted(VOCABULARIES),
        help="Ledger labels: 'en' or Money Forward 'ja' (default from config)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging and progress bars")
    return parser


def _read_files(paths: list[Path]) -> list[MediaFile]:
    files = []
    for path in paths:
        try:
            files.append(MediaFile.from_path(path))
        except OSError as e:
            print(f"[WARN] Skipping {path}: {e}", file=sys.stderr)
    return files


def main(argv: list[str] | None = None) -> int:
    """Run one batch and write the export bundle. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    setup_logger("debug" if args.verbose else None)
    configure(verbose=args.verbose, progress=args.verbose)

    vocabulary = get_vocabulary(args.vocabulary or get_setting("export", "vocabulary"))
    files = _read_files(args.files)
    if not files:
        print("[ERROR] No readable input files", file=sys.stderr)
        return 1

    orchestrator = AnalysisOrchestrator(ReceiptAnalyzer(backend=args.backend, model_name=args.model))
    asyncio.run(orchestrator.submit(files))

    for notice in orchestrator.notices.history:
        print(f"[WARN] {notice}", file=sys.stderr)

    successful = orchestrator.records.successful()
    if not successful:
        print("[ERROR] No receipt was analyzed successfully", file=sys.stderr)
        return 1

    bundle = build_export_bundle(successful, vocabulary)
    output = args.output or Path(export_filename())
    output.write_bytes(bundle)

    failed = len(orchestrator.records) - len(successful)
    print(f"[INFO] Exported {len(successful)} receipt(s) to {output}" + (f", {failed} failed" if failed else ""))
    return 0


if __name__ == "__main__":
    sys.exit(main())
