"""Main module for the photo pipeline CLI."""

import argparse
import asyncio
import json
import os
import signal
import sys
from typing import List, Optional

from . import __version__
from .core.config import PipelineSettings
from .core.exceptions import PhotoPipelineError
from .core.exif_service import extract_exif
from .core.factories import ProcessingPipelineFactory
from .core.logging_config import setup_logger
from .core.models import JobMessage
from .storage import create_storage_adapter, find_original_key


async def run_worker(settings: PipelineSettings) -> None:
    """Run the queue worker until SIGINT or SIGTERM."""
    worker = ProcessingPipelineFactory.create_worker(settings)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.ensure_future(worker.stop()))
    await worker.run()


async def run_single_job(
    settings: PipelineSettings, photo_id: str, original_key: Optional[str]
) -> int:
    storage = create_storage_adapter(settings)
    if original_key is None:
        original_key = await find_original_key(storage, photo_id)
        if original_key is None:
            print(f"No original found for photo {photo_id}", file=sys.stderr)
            return 1

    job = ProcessingPipelineFactory.create_job(settings, storage=storage)
    outcome = await job.process(JobMessage(photo_id=photo_id, original_key=original_key))
    print(outcome.model_dump_json(indent=2))
    return 0


async def enqueue_job(settings: PipelineSettings, photo_id: str, original_key: str) -> int:
    queue = ProcessingPipelineFactory.create_queue(settings)
    message_id = await queue.enqueue(photo_id, original_key)
    print(message_id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photo-pipeline",
        description="Photo Pipeline - derivative ladder, blur placeholder and EXIF extraction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Consume the job queue (configure with PHOTO_PIPELINE_* variables)
  photo-pipeline worker

  # Process one photo locally, discovering its original
  photo-pipeline process 3f2b6c1e-8d4a-4f7b-9c2e-1a5d7e9b0c3f

  # Print the normalized EXIF of a file
  photo-pipeline exif IMG_0001.jpg

  # Show version
  photo-pipeline version
        """,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("worker", help="Run the queue worker until interrupted")

    process_parser = subparsers.add_parser("process", help="Process one photo in-process")
    process_parser.add_argument("photo_id", help="Photo id (UUID v4)")
    process_parser.add_argument(
        "--original-key", default=None, help="Storage key of the original (discovered if omitted)"
    )

    exif_parser = subparsers.add_parser("exif", help="Print normalized EXIF metadata as JSON")
    exif_parser.add_argument("file", help="Image file to read")

    enqueue_parser = subparsers.add_parser("enqueue", help="Send a job message to the queue")
    enqueue_parser.add_argument("photo_id", help="Photo id (UUID v4)")
    enqueue_parser.add_argument("original_key", help="Storage key of the original")

    subparsers.add_parser("version", help="Show version information")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the ``photo-pipeline`` command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        os.environ["PHOTO_PIPELINE_LOG_LEVEL"] = "DEBUG"
        setup_logger(level="DEBUG")

    if args.command == "version":
        print("Photo Pipeline CLI")
        print(f"Version {__version__}")
        sys.exit(0)

    if args.command == "exif":
        exif = extract_exif(args.file)
        print(json.dumps(exif.model_dump(by_alias=True, exclude_none=True) if exif else None, indent=2))
        sys.exit(0)

    if args.command not in ("worker", "process", "enqueue"):
        parser.print_help()
        sys.exit(1)

    try:
        settings = PipelineSettings().ensure_valid()
        if args.command == "worker":
            asyncio.run(run_worker(settings))
            exit_code = 0
        elif args.command == "process":
            exit_code = asyncio.run(run_single_job(settings, args.photo_id, args.original_key))
        else:
            exit_code = asyncio.run(enqueue_job(settings, args.photo_id, args.original_key))
    except PhotoPipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
