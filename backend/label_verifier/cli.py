"""Command-line interface for verifying labels and reading the verification log.

Subcommands:
- ``verify``: run the pipeline on one image and print the report
- ``analyze-logs``: summarize the JSON verification log per image
- ``serve``: run the HTTP API
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import get_settings
from .exceptions import LabelVerificationError
from .services import VerificationLogStore, VerificationPipeline, analyze_logs, render_report
from .services.log_analysis import format_summary

logger = logging.getLogger(__name__)

# (option, field name) pairs for the six expected label values
_FIELD_OPTIONS = [
    ("--brand-name", "brandName"),
    ("--product-class", "productClass"),
    ("--alcohol-content", "alcoholContent"),
    ("--net-contents", "netContents"),
    ("--manufacturer-name", "manufacturerName"),
    ("--manufacturer-address", "manufacturerAddress"),
]


def _progress_printer(verbose: bool):
    def show(percent: int) -> None:
        if verbose:
            print(f"\rProgress: {percent:3d}%", end="", file=sys.stderr, flush=True)
    return show


def verify_image(image_path: Path, fields: dict, verbose: bool = False) -> int:
    """
    Verify one image and print the report.

    Returns:
        Process exit code: 0 all matched, 1 some field not found, 2 error
    """
    settings = get_settings()
    pipeline = VerificationPipeline.from_settings(settings)

    try:
        image_bytes = image_path.read_bytes()
    except OSError as e:
        logger.error(f"Cannot read {image_path}: {e}")
        return 2

    try:
        result = asyncio.run(
            pipeline.run(image_bytes, image_path.name, fields, _progress_printer(verbose))
        )
    except LabelVerificationError as e:
        if verbose:
            print(file=sys.stderr)
        logger.error(f"Verification failed: {e}")
        return 2

    if verbose:
        print(file=sys.stderr)
        print(f"OCR ({result.configuration}, confidence {result.ocr_confidence:.1f}):")
        print(result.ocr_text)
        print()
    print(render_report(result.results))
    return 0 if result.all_matched else 1


def print_log_analysis(log_file: Path) -> int:
    """Print a per-image summary of the verification log."""
    if not log_file.exists():
        print("No verification log file found. Run some verifications first.")
        return 1

    summaries = analyze_logs(VerificationLogStore(log_file).read_all())
    print("\n=== VERIFICATION LOG ANALYSIS ===\n")
    for summary in summaries:
        print(format_summary(summary))
        print()
    print("=" * 80)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="label-verifier",
        description="Verify beverage label images against expected values",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings)")
    subparsers = parser.add_subparsers(dest="command")

    verify_parser = subparsers.add_parser("verify", help="Verify one label image")
    verify_parser.add_argument("image", type=Path, help="Label image file")
    for option, _ in _FIELD_OPTIONS:
        verify_parser.add_argument(option, default="")
    verify_parser.add_argument("-v", "--verbose", action="store_true", help="Show progress and OCR text")

    analyze_parser = subparsers.add_parser("analyze-logs", help="Summarize the verification log")
    analyze_parser.add_argument("--log-file", type=Path, default=None, help="Log file (default from settings)")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=3001)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, (args.log_level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "verify":
        fields = {name: getattr(args, option[2:].replace("-", "_")) for option, name in _FIELD_OPTIONS}
        return verify_image(args.image, fields, verbose=args.verbose)

    if args.command == "analyze-logs":
        return print_log_analysis(args.log_file or settings.log_file)

    if args.command == "serve":
        import uvicorn

        from .main import create_app

        uvicorn.run(create_app(), host=args.host, port=args.port)
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
