"""
Encode Action Command Line.

Runs the encode action over a job description stored as JSON and prints the
updated job.

Usage:
  action-encode job.json                      # Transcode, print job to stdout
  action-encode job.json --output done.json   # Write the updated job to a file
  action-encode job.json --workpath /tmp/w    # Override the job workpath
  action-encode job.json --debug              # Echo ffmpeg command and output
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from action_encode.core.config import settings
from action_encode.core.logging import log_error, setup_logging
from action_encode.modules.transcoding.exceptions import EncodeActionError
from action_encode.modules.transcoding.models import Job
from action_encode.modules.transcoding.schemas import EncodeSettings
from action_encode.modules.transcoding.service import TranscodingService

logger = logging.getLogger("action_encode")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="action-encode",
        description="Transcode the video assets of a render job with ffmpeg",
    )
    parser.add_argument("job", type=Path, help="Path to the job JSON file")
    parser.add_argument("--workpath", help="Override the job workpath")
    parser.add_argument("--output", type=Path, help="Write the updated job here instead of stdout")
    parser.add_argument("--debug", action="store_true", help="Log the ffmpeg command and its output")
    return parser


def load_job(path: Path, workpath: Optional[str] = None) -> Job:
    """Load a job description from a JSON file."""
    job = Job.model_validate_json(path.read_text(encoding="utf-8"))
    if workpath:
        job.workpath = workpath
    return job


async def run_job(job: Job, debug: bool = False) -> Job:
    run_settings = EncodeSettings.from_config(
        logger=logger,
        workpath=job.workpath,
        debug=debug or settings.DEBUG,
    )
    return await TranscodingService(run_settings).run(job)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        level="DEBUG" if args.debug else settings.LOG_LEVEL,
        json_format=settings.LOG_JSON,
    )

    try:
        job = load_job(args.job, args.workpath)
    except (OSError, ValidationError) as e:
        log_error(logger, f"Unable to load job from {args.job}", exception=e)
        return 1

    try:
        job = asyncio.run(run_job(job, debug=args.debug))
    except EncodeActionError as e:
        log_error(logger, f"[{job.uid}] action-encode failed: {e}", exception=e, job_uid=job.uid)
        return 1

    result = job.model_dump_json(by_alias=True, indent=2)
    if args.output:
        args.output.write_text(result + "\n", encoding="utf-8")
    else:
        sys.stdout.write(result + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
