from __future__ import annotations

import argparse
from pathlib import Path

import requests

from config_loader import build_config, load_config
from logging_utils import configure_logging, get_logger

from .errors import EngineUnavailable, IncompleteInput
from .image_fetcher import ImageFetcher
from .job_builder import POLICY_SKIP
from .models import JobOutcome, Success
from .pipeline import SlidePipeline
from .row_loader import load_slide_document

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_JOB_FAILURES = 1
EXIT_INCOMPLETE_INPUT = 2
EXIT_ENGINE_UNAVAILABLE = 3
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render one video per slide row")
    parser.add_argument("rows", help="Path to the slide rows document (JSON or YAML)")
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to YAML configuration (default: config.yaml; built-in defaults if missing)",
    )
    parser.add_argument(
        "--count",
        type=int,
        help="Number of leading rows to render (default: document count or every filled row)",
    )
    parser.add_argument(
        "--engine",
        choices=["moviepy", "ffmpeg"],
        help="Override the encoding engine defined in config.yaml",
    )
    parser.add_argument(
        "--output-dir",
        help="Override output directory defined in config.yaml",
    )
    parser.add_argument(
        "--skip-incomplete",
        action="store_true",
        help="Skip rows missing a title or content instead of rejecting the batch",
    )
    parser.add_argument(
        "--print-plan",
        action="store_true",
        help="Print generated plan.json to stdout after completion",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config_path = Path(args.config).expanduser()
    if config_path.exists():
        config = load_config(config_path)
    else:
        config = build_config({}, Path.cwd())
    if args.output_dir:
        output_override = Path(args.output_dir).expanduser().resolve()
        output_override.mkdir(parents=True, exist_ok=True)
        config.output_dir = output_override

    configure_logging(level=config.logging_level, log_file=config.log_file)
    if not config_path.exists():
        logger.warning("Config %s not found; using built-in defaults", config_path)

    try:
        document = load_slide_document(
            args.rows,
            capacity=config.batch_capacity,
            fetcher=ImageFetcher(config.http_settings),
        )
    except (OSError, ValueError, requests.RequestException) as exc:
        logger.error("Cannot load %s: %s", args.rows, exc)
        return EXIT_USAGE

    def _report(outcome: JobOutcome) -> None:
        if isinstance(outcome, Success):
            print(f"[{outcome.job_id + 1}] ok      {outcome.title}")
        else:
            print(f"[{outcome.job_id + 1}] failed  {outcome.title}: {outcome.reason}")

    pipeline = SlidePipeline(config, engine_name=args.engine)
    try:
        result = pipeline.run(
            document,
            count=args.count,
            policy=POLICY_SKIP if args.skip_incomplete else None,
            on_outcome=_report,
        )
    except IncompleteInput as exc:
        logger.error("%s", exc)
        return EXIT_INCOMPLETE_INPUT
    except EngineUnavailable as exc:
        logger.error("%s", exc)
        return EXIT_ENGINE_UNAVAILABLE
    except ValueError as exc:
        logger.error("Invalid request: %s", exc)
        return EXIT_USAGE
    finally:
        pipeline.close()

    logger.info("Slide videos written to %s", result.output_dir)

    if args.print_plan:
        try:
            print(result.plan_path.read_text(encoding="utf-8"))
        except OSError as exc:  # pragma: no cover - user convenience
            logger.error("Failed to read plan file: %s", exc)
            return EXIT_JOB_FAILURES
    return EXIT_OK if result.all_succeeded else EXIT_JOB_FAILURES


if __name__ == "__main__":
    raise SystemExit(main())
