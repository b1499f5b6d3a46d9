"""Command-line interface for scanning document images.

Provides subcommands for scanning a single image into structured fields,
checking image quality, and reporting which backends are configured.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from doctrack_ocr.errors import ImageDecodeError
from doctrack_ocr.ocr.base import DocumentType, PreferredService, RecognitionResult
from doctrack_ocr.ocr.orchestrator import OCROptions, OCROrchestrator
from doctrack_ocr.ocr.session import ScanSession
from doctrack_ocr.preprocessing.image_io import decode_image
from doctrack_ocr.preprocessing.quality import QualityAssessment, assess_quality
from doctrack_ocr.utils.config import AppConfig, load_config, validate_ocr_config
from doctrack_ocr.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


class ScanFailed(Exception):
    """Raised by :func:`scan_file` with the session's error message."""


def _print_progress(progress: int, message: str) -> None:
    print(f"[{progress:3d}%] {message}")


def scan_file(
    file_path: Path,
    config: AppConfig,
    language: str = "en",
    document_type: str | None = None,
    preferred_service: str = "auto",
    verbose: bool = False,
) -> RecognitionResult:
    """Scan one image file through a :class:`ScanSession`.

    Args:
        file_path: Image file to scan.
        config: Application configuration.
        language: Document language code.
        document_type: Expected document type, if known.
        preferred_service: Backend to try first.
        verbose: Whether to print progress updates.

    Returns:
        Recognition result.

    Raises:
        ScanFailed: If the scan did not produce a result.
    """
    session = ScanSession(OCROrchestrator(config))
    options = OCROptions(
        language=language,
        document_type=document_type or None,
        preferred_service=preferred_service,
        progress_callback=_print_progress if verbose else None,
    )

    result = asyncio.run(session.start(file_path.read_bytes(), options))
    if result is None:
        raise ScanFailed(session.error or "OCR processing failed")
    return result


def assess_file(file_path: Path, config: AppConfig) -> QualityAssessment:
    """Assess the quality of one image file.

    Args:
        file_path: Image file to assess.
        config: Application configuration.

    Returns:
        Quality assessment.
    """
    image = decode_image(file_path.read_bytes())
    return assess_quality(image, config.quality)


def _write_output(payload: dict[str, object], output: Path | None) -> None:
    output_str = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str)
        print(f"Output written to {output}")
    else:
        print(output_str)


def _print_config_report(config: AppConfig) -> bool:
    validation = validate_ocr_config(config.ocr)
    print(f"Microblink:    {'enabled' if config.ocr.is_microblink_enabled else 'off'}")
    print(
        f"Google Vision: {'enabled' if config.ocr.is_google_vision_enabled else 'off'}"
    )
    print(f"Tesseract:     {'enabled' if config.ocr.is_tesseract_enabled else 'off'}")
    for message in validation.warnings:
        print(f"Warning: {message}")
    for message in validation.errors:
        print(f"Error: {message}", file=sys.stderr)
    return validation.is_valid


def _require_file(path: Path) -> None:
    if not path.is_file():
        print(f"Error: {path} does not exist", file=sys.stderr)
        sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Document Scan OCR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    scan_parser = subparsers.add_parser("scan", help="Scan a document image")
    scan_parser.add_argument("file", type=Path, help="Image file to scan")
    scan_parser.add_argument(
        "-l", "--language", default=None, help="Document language (default: en)"
    )
    scan_parser.add_argument(
        "-t",
        "--type",
        choices=[t.value for t in DocumentType],
        default=None,
        dest="doc_type",
        help="Expected document type",
    )
    scan_parser.add_argument(
        "-s",
        "--service",
        choices=[s.value for s in PreferredService],
        default="auto",
        help="Preferred OCR service (default: auto)",
    )
    scan_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")
    scan_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Print progress"
    )

    assess_parser = subparsers.add_parser("assess", help="Check image quality")
    assess_parser.add_argument("file", type=Path, help="Image file to assess")

    subparsers.add_parser("check-config", help="Report configured backends")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "scan":
        _require_file(args.file)
        try:
            result = scan_file(
                args.file,
                config,
                language=args.language or config.ocr.default_language,
                document_type=args.doc_type,
                preferred_service=args.service,
                verbose=args.verbose,
            )
        except ScanFailed as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        _write_output(result.to_dict(), args.output)
    elif args.command == "assess":
        _require_file(args.file)
        try:
            assessment = assess_file(args.file, config)
        except ImageDecodeError as exc:
            print(f"Error: {exc.user_message}", file=sys.stderr)
            sys.exit(1)
        _write_output(assessment.to_dict(), None)
    elif args.command == "check-config":
        if not _print_config_report(config):
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
