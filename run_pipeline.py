#!/usr/bin/env python3
"""Turn a folder of menu photos into output/menu.json.

Usage:
    python run_pipeline.py                          # process data/input-menu/
    python run_pipeline.py --project-dir ./bistro   # process ./bistro/input-menu/
    python run_pipeline.py --max-concurrency 2      # fewer parallel remote calls

Per-photo results are cached in <project>/tmp/; rerunning after a crash only
repeats the work that did not finish.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).resolve().parent))

from settings import Settings
from pipeline import orchestrator
from pipeline.exceptions import PipelineError

logger = logging.getLogger("run_pipeline")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    parser.add_argument("--project-dir", type=Path, dest="project_dir",
                        help="Directory holding input-menu/, tmp/ and output/")
    parser.add_argument("--max-concurrency", type=int, dest="max_concurrency",
                        help="Maximum number of photos processed at once per stage")
    parser.add_argument("--log-level", dest="log_level",
                        help="Logging level (DEBUG, INFO, WARNING, ...)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if v is not None}

    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        logging.basicConfig(level=logging.ERROR)
        logger.error("Invalid configuration: %s", exc)
        return 1

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        output_path = asyncio.run(orchestrator.run(settings))
    except PipelineError as exc:
        logger.error("Pipeline failed: %s", exc)
        return 1
    except OSError as exc:
        logger.error("Pipeline failed on file access: %s", exc)
        return 1

    logger.info("=== Done → %s ===", output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
