"""Command-line interface for direct uploads.

Provides argument parsing and the main entry point for uploading files,
aborting stale uploads and hashing files from the command line.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from s3direct.cancellation import CancellationSource
from s3direct.config import ConfigError, load_profiles, select_profile
from s3direct.errors import InvalidInput, UploadError
from s3direct.hasher import IncrementalHasher
from s3direct.models import ProfileConfig, ResultStatus
from s3direct.multipart import Uploader
from s3direct.reporters import CompositeReporter, ConsoleReporter, JsonReporter, Reporter
from s3direct.runner import DEFAULT_CONCURRENCY, DEFAULT_PART_SIZE, UploadRunner
from s3direct.transport import HttpxTransport

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2
EXIT_CANCELED = 130

HASH_CHUNK_SIZE = 1024 * 1024


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="s3direct",
        description="Upload large files directly to S3-compatible storage",
    )

    parser.add_argument(
        "-c", "--config",
        default="config.json",
        help="Path to configuration file (default: config.json)",
    )

    parser.add_argument(
        "-p", "--profile",
        help="Profile key to use when several are configured",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Log lifecycle events (-v) or every request (-vv)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Upload a file as a multipart upload")
    upload.add_argument("file", help="Path of the file to upload")
    upload.add_argument("-b", "--bucket", help="Target bucket (default: profile bucket)")
    upload.add_argument("-k", "--key", help="Object key (default: file name)")
    upload.add_argument(
        "--part-size",
        type=int,
        default=DEFAULT_PART_SIZE // (1024 * 1024),
        metavar="MIB",
        help="Part size in MiB (default: %(default)s)",
    )
    upload.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_CONCURRENCY,
        help="Parts uploaded at once (default: %(default)s)",
    )
    upload.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress per-part output, show only summary",
    )
    upload.add_argument(
        "-j", "--json-output",
        metavar="PATH",
        help="Write JSON result to file",
    )

    abort = subparsers.add_parser("abort", help="Abort an incomplete multipart upload")
    abort.add_argument("-b", "--bucket", help="Bucket (default: profile bucket)")
    abort.add_argument("-k", "--key", required=True, help="Object key")
    abort.add_argument("-u", "--upload-id", required=True, help="Upload id to abort")

    hash_cmd = subparsers.add_parser("hash", help="Print SHA-256 and MD5 of a file")
    hash_cmd.add_argument("file", help="Path of the file to hash")

    return parser.parse_args(argv)


def configure_logging(verbosity: int) -> None:
    """Route library logging through Rich on stderr."""
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def create_reporters(args: argparse.Namespace) -> list[Reporter]:
    """Create reporters based on command-line arguments."""
    reporters: list[Reporter] = [ConsoleReporter(quiet=args.quiet)]

    if args.json_output:
        reporters.append(JsonReporter(output_path=args.json_output))

    return reporters


def build_uploader(profile: ProfileConfig, transport: HttpxTransport) -> Uploader:
    return Uploader(
        profile.credentials(),
        transport,
        addressing_style=profile.addressing_style,
    )


def _install_interrupt_handler(source: CancellationSource) -> None:
    """Turn Ctrl-C into cooperative cancellation of the running upload."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, source.cancel)
    except (NotImplementedError, RuntimeError):
        # Not available on Windows event loops
        logger.debug("SIGINT handler not installed")


async def run_upload(args: argparse.Namespace, profile: ProfileConfig) -> int:
    bucket = args.bucket or profile.bucket_name
    if not bucket:
        print("No bucket given and profile has no bucket_name", file=sys.stderr)
        return EXIT_ERROR
    key = args.key or os.path.basename(args.file)

    reporters = create_reporters(args)
    reporter = reporters[0] if len(reporters) == 1 else CompositeReporter(reporters)

    source = CancellationSource()
    _install_interrupt_handler(source)

    async with HttpxTransport() as transport:
        runner = UploadRunner(
            build_uploader(profile, transport),
            reporter=reporter,
            part_size=args.part_size * 1024 * 1024,
            concurrency=args.concurrency,
        )
        result = await runner.upload_file(args.file, bucket, key, source.token)

    if result.status == ResultStatus.COMPLETED:
        return EXIT_OK
    if result.status == ResultStatus.CANCELED:
        return EXIT_CANCELED
    return EXIT_FAILED


async def run_abort(args: argparse.Namespace, profile: ProfileConfig) -> int:
    bucket = args.bucket or profile.bucket_name
    if not bucket:
        print("No bucket given and profile has no bucket_name", file=sys.stderr)
        return EXIT_ERROR

    async with HttpxTransport() as transport:
        uploader = build_uploader(profile, transport)
        try:
            aborted = await uploader.abort_upload(bucket, args.key, args.upload_id)
        except UploadError as e:
            print(f"Abort failed: {e}", file=sys.stderr)
            return EXIT_FAILED

    if aborted:
        print(f"Aborted upload {args.upload_id}")
    else:
        print(f"Upload {args.upload_id} not found (already aborted or completed)")
    return EXIT_OK


def run_hash(args: argparse.Namespace) -> int:
    hasher = IncrementalHasher()
    try:
        with open(args.file, "rb") as f:
            while chunk := f.read(HASH_CHUNK_SIZE):
                hasher.update(chunk)
    except OSError as e:
        print(f"Cannot read {args.file}: {e}", file=sys.stderr)
        return EXIT_ERROR

    print(f"sha256  {hasher.finalize_sha256()}  {args.file}")
    print(f"md5     {hasher.finalize_md5()}  {args.file}")
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 for success, 1 for upload failures, 2 for errors,
        130 when canceled
    """
    args = parse_args(argv)
    configure_logging(args.verbose)

    if args.command == "hash":
        return run_hash(args)

    try:
        profile = select_profile(load_profiles(args.config), args.profile)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_ERROR

    command = run_upload if args.command == "upload" else run_abort
    try:
        return asyncio.run(command(args, profile))
    except InvalidInput as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return EXIT_ERROR
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
