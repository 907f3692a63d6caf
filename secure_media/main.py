"""Command-line entry point.

    python -m secure_media.main diagnose
    python -m secure_media.main sign course-images/cover.jpg --hours 2
    python -m secure_media.main transcribe audio/user-recordings/abc.webm

Results are printed to stdout as JSON; logs go to stderr as structured JSON.
"""

import argparse
import asyncio
import json
import logging
import sys

from secure_media.observability.logger import setup_logging
from secure_media.services.diagnostics import diagnose
from secure_media.services.secure_url import (
    MediaCategory,
    SecureUrlService,
    SignedUrlResult,
)
from secure_media.transcription.pipeline import (
    DEFAULT_MAX_RETRIES,
    AudioTranscriptionPipeline,
)
from secure_media.utils.errors import MediaAccessError

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="secure-media")
    parser.add_argument("--verbose", action="store_true", help="enable debug logs")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("diagnose", help="check CloudFront signing configuration")

    sign_cmd = commands.add_parser("sign", help="issue signed URLs")
    sign_cmd.add_argument("keys", nargs="+", help="object keys or storage URLs")
    sign_cmd.add_argument("--hours", type=int, default=None)
    sign_cmd.add_argument(
        "--category",
        choices=[category.value for category in MediaCategory],
        default=MediaCategory.IMAGE.value,
    )

    transcribe_cmd = commands.add_parser("transcribe", help="transcribe a recording")
    transcribe_cmd.add_argument("key", help="audio/user-recordings/... object key")
    transcribe_cmd.add_argument(
        "--max-retries", type=int, default=DEFAULT_MAX_RETRIES
    )
    return parser


async def _run(args: argparse.Namespace) -> int:
    if args.command == "diagnose":
        report = await diagnose()
        print(json.dumps(report, indent=2))
        return 0 if report["configuration"]["isValid"] else 1

    if args.command == "sign":
        service = SecureUrlService.from_env()
        if not service.is_configured():
            logger.error("CloudFront is not properly configured")
            return 1
        results = await service.generate_secure_urls(
            MediaCategory(args.category), args.keys, args.hours
        )
        print(json.dumps([result.to_dict() for result in results], indent=2))
        return 0 if all(isinstance(r, SignedUrlResult) for r in results) else 1

    pipeline = AudioTranscriptionPipeline.from_env()
    result = await pipeline.transcribe(args.key, args.max_retries)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run the command and return an exit code."""
    args = _build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    try:
        return asyncio.run(_run(args))
    except MediaAccessError as exc:
        logger.error("%s failed: %s", args.command, exc, extra={"error_kind": type(exc).__name__})
        return 1


if __name__ == "__main__":
    sys.exit(main())
