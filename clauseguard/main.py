#!/usr/bin/env python3
"""Command-line entry point for ClauseGuard.

Subcommands:
- ``extract``: run text extraction on a local file and print the result as JSON
- ``serve``: start the HTTP API with uvicorn
"""

import argparse
import mimetypes
import sys
from pathlib import Path

import msgspec
import uvicorn
from loguru import logger

from clauseguard import __version__
from clauseguard.agents import IngestionAgent
from clauseguard.config import load_settings
from clauseguard.error_handling import ClauseGuardError
from clauseguard.gemini_service import GeminiService
from clauseguard.logging_config import setup_logging
from tools.text_quality import validate_quality


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="ClauseGuard contract document pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Extract text from a contract and print JSON
  python -m clauseguard.main extract contracts/msa.pdf

  # Force the declared format
  python -m clauseguard.main extract scan.bin --format image/png

  # Start the API
  python -m clauseguard.main serve --port 8000
        """
    )
    parser.add_argument("--env-file", type=str, default=None, help="Optional .env file to load")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)"
    )
    parser.add_argument("--version", action="version", version=f"clauseguard {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser("extract", help="Extract raw text from a document")
    extract_parser.add_argument("file", type=str, help="Path to the document")
    extract_parser.add_argument(
        "--format",
        dest="declared_format",
        type=str,
        default=None,
        help="MIME type or extension (default: guessed from the file name)"
    )

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", type=str, default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    return parser.parse_args(argv)


def run_extract(args: argparse.Namespace, settings) -> int:
    file_path = Path(args.file)
    if not file_path.exists():
        logger.error(f"File not found: {args.file}")
        return 1

    declared_format = (
        args.declared_format
        or mimetypes.guess_type(file_path.name)[0]
        or file_path.suffix
    )

    agent = IngestionAgent(
        gemini_service=GeminiService(
            api_key=settings.google_api_key,
            model_name=settings.model_name,
            vision_model_name=settings.vision_model_name,
            max_prompt_chars=settings.max_prompt_chars
        ),
        min_text_length=settings.min_text_length,
        max_file_size_mb=settings.max_file_size_mb
    )

    content = file_path.read_bytes()
    agent.validate_upload(file_path.name, content)
    result = agent.extract_text(content, declared_format, document_id=file_path.name)

    output = msgspec.to_builtins(result)
    output["stats"] = validate_quality(result.raw_text)
    sys.stdout.write(msgspec.json.format(msgspec.json.encode(output)).decode() + "\n")
    return 0


def run_serve(args: argparse.Namespace, settings) -> int:
    """Start uvicorn with the settings this process loaded.

    Without reload the app is built from ``settings`` directly. The reloader
    needs an import string, so its worker re-reads the environment, which
    already holds the values loaded from ``--env-file``.
    """
    logger.info(f"Starting ClauseGuard API on {args.host}:{args.port}", model=settings.model_name)

    if args.reload:
        uvicorn.run("api.main:app", host=args.host, port=args.port, reload=True)
        return 0

    from api.main import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port)
    return 0


def main(argv=None) -> int:
    """Main entry point for the application.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_arguments(argv)
    settings = load_settings(args.env_file)

    # Logs go to stderr so extract output stays clean JSON
    setup_logging(log_dir=settings.log_dir, level=args.log_level or settings.log_level)

    try:
        if args.command == "extract":
            return run_extract(args, settings)

        return run_serve(args, settings)

    except ClauseGuardError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
