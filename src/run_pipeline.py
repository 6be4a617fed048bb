"""Pipeline CLI Entry Point

Provides the command-line interface for the interview processing pipeline.
Handles argument parsing, logging configuration, and orchestration of the
end-to-end run from interview JSON files to the explorer's data artifacts.

Usage:
    python -m src.run_pipeline --data-dir examples --output-dir public/data

Exit codes: 0 when every file was processed, 1 when any file failed or the
run aborted.
"""

import argparse
import logging
import time
from pathlib import Path

from src.interview_pipeline.index_config import DEFAULT_CLUSTER_COUNT
from src.interview_pipeline.pipeline import (
    DEFAULT_MAX_WORKERS,
    PipelineFailure,
    run_pipeline,
)

LOG_DIR = Path("logs")


def configure_logging(verbose: bool = False) -> Path:
    """Send pipeline logs to the console and to LOG_DIR/pipeline.log.

    The console shows INFO and up (DEBUG with --verbose); the file always
    keeps DEBUG so per-file timings are available after a CI run. Model
    and HTTP client loggers are capped at WARNING.

    Returns:
        Path of the log file
    """
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / "pipeline.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for noisy in ("httpx", "openai", "sentence_transformers", "urllib3", "filelock"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(formatter)

    log_handler = logging.FileHandler(log_file, encoding="utf-8")
    log_handler.setLevel(logging.DEBUG)
    log_handler.setFormatter(formatter)

    # replace, not append: main() may run more than once per process
    root.handlers.clear()
    root.addHandler(console)
    root.addHandler(log_handler)
    return log_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Interview data processing pipeline"
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path("examples"),
        help="Directory containing one JSON file per interview.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("public/data"),
        help="Directory where output artifacts will be written.",
    )
    parser.add_argument(
        "--clusters",
        type=int,
        default=DEFAULT_CLUSTER_COUNT,
        help=f"Clusters per category (default: {DEFAULT_CLUSTER_COUNT}).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for k-means++ initialization (default: random).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_MAX_WORKERS,
        help=f"Files enriched in parallel (default: {DEFAULT_MAX_WORKERS}).",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional limit on number of interview files to process.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Process data but don't write any artifacts.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show DEBUG messages on the console as well as in the log file.",
    )
    return parser


def main(argv=None) -> int:
    """
    Run the pipeline from the command line.

    Returns:
        0 when every interview file was processed and written, 1 when any
        file was excluded, the arguments were invalid, or the run aborted
    """
    args = build_parser().parse_args(argv)
    log_file = configure_logging(args.verbose)
    logger = logging.getLogger(__name__)

    logger.info("=== Starting interview processing pipeline ===")
    logger.debug("Writing detailed log to %s", log_file)
    logger.info(
        "data_dir=%s output_dir=%s clusters=%d seed=%s workers=%d limit=%s dry_run=%s",
        args.data_dir,
        args.output_dir,
        args.clusters,
        args.seed,
        args.workers,
        args.limit if args.limit else "all",
        args.dry_run,
    )

    if args.clusters < 1:
        logger.error("--clusters must be at least 1 (got %d)", args.clusters)
        return 1

    try:
        start_time = time.time()

        result = run_pipeline(
            data_dir=args.data_dir,
            output_dir=args.output_dir,
            k=args.clusters,
            seed=args.seed,
            max_workers=args.workers,
            limit=args.limit,
            dry_run=args.dry_run,
        )

        logger.info("=" * 70)
        logger.info("Data processing complete in %.2fs", time.time() - start_time)
        logger.info("Summary:")
        logger.info("  Data dir:   %s", args.data_dir)
        logger.info("  Processed:  %d/%d files", len(result.interviews), result.total_files)
        logger.info("  Failed:     %d", len(result.failures))
        logger.info("  Documents:  %d", result.metadata.get("searchDocuments", 0))
        logger.info("  Tags:       %d", len(result.metadata.get("tags", [])))
        if result.output_paths:
            logger.info("Artifacts:")
            for name, path in result.output_paths.items():
                logger.info("  %-16s %s", f"{name}:", path)
        logger.info("=" * 70)

        result.raise_for_failures()

    except PipelineFailure as e:
        for failure in e.failures:
            logger.error("  %s [%s]: %s", failure.file, failure.stage, failure.reason)
        logger.error("Pipeline finished with failures: %s", e)
        return 1
    except Exception as e:
        logger.exception(f"Pipeline failed with an unhandled exception: {e}")
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
