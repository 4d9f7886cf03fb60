"""
Command-line driver: builds an upload archive from a serialized result tree.
"""
import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .archive import ArchiveError, AssessmentArchiveBuilder
from .config import configure_logging, settings
from .models import parse_assessment_result

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Package an assessment result for upload.")
    parser.add_argument("result", help="Path to a JSON-encoded assessment result")
    parser.add_argument("--output-directory", default=None,
                        help="Recorder output directory (removed after the build)")
    parser.add_argument("--data-group", action="append", default=None,
                        help="Participant data group (repeatable)")
    parser.add_argument("--out", default=None,
                        help="Where to write the zip (default: <archives_dir>/<identifier>-<uuid>.zip)")
    parser.add_argument("--keep-output", action="store_true",
                        help="Don't remove the output directory")
    parser.add_argument("--log-level", default=None, help="Logging level")
    return parser


async def run(args: argparse.Namespace) -> int:
    try:
        raw = json.loads(Path(args.result).read_text(encoding="utf-8"))
        result = parse_assessment_result(raw)
    except (OSError, ValueError, ValidationError) as e:
        logger.error("Could not read assessment result %s: %s", args.result, e)
        return 2

    builder = AssessmentArchiveBuilder.create(
        result,
        output_directory=args.output_directory,
        data_groups=args.data_group
    )
    if builder is None:
        return 1

    exit_code = 0
    try:
        archive = await builder.build_archive()
        out = Path(args.out) if args.out else settings.archives_dir / f"{builder.identifier}-{builder.uuid}.zip"
        out.parent.mkdir(parents=True, exist_ok=True)
        archive.write_to(out)
        print(f"📦 Archive written to {out} ({len(archive.files)} file(s))")
    except (OSError, ArchiveError) as e:
        logger.error("Failed to build archive for %s: %s", builder.identifier, e)
        exit_code = 2
    finally:
        if not args.keep_output:
            try:
                await builder.cleanup()
            except OSError as e:
                logger.error("Failed to remove output directory %s: %s", args.output_directory, e)
                exit_code = 2
    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return asyncio.run(run(args))
