"""
Command line entry point.

Reads extracted balancete text files, runs the analysis and writes the
result as JSON.

Usage:
    balancete-analyze jan.txt fev.txt --granularity mensal --output result.json
"""
import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

from balancete.config import get_settings
from balancete.engine.models import SourceDocument
from balancete.engine.orchestrator import run_analysis
from balancete.exceptions import (
    BalanceteError,
    DocumentReadError,
    InsufficientDocumentsError,
    InvalidFileTypeError,
)
from balancete.logging_config import configure_logging
from balancete.services.period_normalizer import Granularity

logger = structlog.get_logger(__name__)

MIN_DOCUMENTS = 2
MAX_DOCUMENTS = 12
ALLOWED_SUFFIXES = [".txt"]
ENCODINGS = ("utf-8", "latin-1")


def granularity_type(value: str) -> Granularity:
    """argparse type for --granularity."""
    try:
        return Granularity.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="balancete-analyze",
        description="Reconcile balancete ledgers into a period-indexed financial dataset.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  balancete-analyze T1_2024.txt T2_2024.txt
  balancete-analyze jan.txt fev.txt mar.txt --granularity mensal -o result.json
        """,
    )
    parser.add_argument(
        "files",
        nargs="+",
        type=Path,
        help="Extracted text of each balancete (.txt)",
    )
    parser.add_argument(
        "--granularity",
        "-g",
        type=granularity_type,
        default=None,
        help="monthly|quarterly|annual (or mensal|trimestral|anual)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Write JSON to this file instead of stdout",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Parse documents with this many threads",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default from BALANCETE_LOG_LEVEL)",
    )
    return parser


def read_text(path: Path) -> str:
    """Read a document as UTF-8, falling back to latin-1."""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DocumentReadError(path.name, str(e)) from e

    for encoding in ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise DocumentReadError(path.name, "undecodable text")


def load_documents(paths: Sequence[Path]) -> List[SourceDocument]:
    """
    Enforce the input preconditions and read every document.

    Raises:
        InsufficientDocumentsError: Fewer than 2 or more than 12 files.
        InvalidFileTypeError: A file is not extracted text.
        DocumentReadError: A file could not be read.
    """
    if not MIN_DOCUMENTS <= len(paths) <= MAX_DOCUMENTS:
        raise InsufficientDocumentsError(len(paths), MIN_DOCUMENTS, MAX_DOCUMENTS)

    documents = []
    for path in paths:
        if path.suffix.lower() not in ALLOWED_SUFFIXES:
            raise InvalidFileTypeError(path.name, ALLOWED_SUFFIXES)
        documents.append(SourceDocument(file_name=path.name, text=read_text(path)))
    return documents


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line tool; returns the process exit status."""
    args = create_argument_parser().parse_args(argv)

    try:
        settings = get_settings()
        configure_logging(args.log_level or settings.log_level, settings.log_json)
        documents = load_documents(args.files)
    except BalanceteError as e:
        logger.warning("Input rejected", error_code=e.error_code, message=e.message)
        print(json.dumps(e.to_dict(), ensure_ascii=False), file=sys.stderr)
        return 2

    result = run_analysis(
        documents,
        granularity=args.granularity,
        settings=settings,
        max_workers=args.workers,
    )
    payload = json.dumps(result.to_dict(), ensure_ascii=False, indent=2)

    if args.output:
        args.output.write_text(payload, encoding="utf-8")
        logger.info("Result written", path=str(args.output))
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
