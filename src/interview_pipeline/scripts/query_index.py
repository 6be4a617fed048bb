"""Search Query Script

Runs a full-text or semantic query against a built search-index.json and
prints the matching documents as JSON, best first.

Usage:
    python -m src.interview_pipeline.scripts.query_index \\
        --output-dir public/data --mode semantic --tag growth \\
        "feeling supported by mentors"

Exits with code 0 on success (including no results), 1 when the artifacts
cannot be loaded or the query fails.
"""

import argparse
import json
import logging
from pathlib import Path

from lunr.exceptions import QueryParseError

from src.interview_pipeline.embeddings import EmbeddingFailure
from src.interview_pipeline.index_config import (
    INTERVIEWS_FILE,
    SEARCH_INDEX_FILE,
    SEMANTIC_RESULT_LIMIT,
    SEMANTIC_SIMILARITY_THRESHOLD,
)
from src.interview_pipeline.models import EnrichedInterview
from src.interview_pipeline.search import (
    full_text_search,
    interview_tags,
    semantic_search,
)
from src.interview_pipeline.search_index import load_search_index

logger = logging.getLogger(__name__)


def load_tags_by_interview(output_dir: Path):
    path = output_dir / INTERVIEWS_FILE
    with path.open("r", encoding="utf-8") as f:
        interviews = [EnrichedInterview.model_validate(i) for i in json.load(f)]
    return interview_tags(interviews)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Query the interview search index.")
    parser.add_argument("query", help="Search text.")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("public/data"),
        help="Directory containing search-index.json and interviews.json.",
    )
    parser.add_argument(
        "--mode",
        choices=["text", "semantic"],
        default="text",
        help="Full-text (lunr) or semantic (embedding) search.",
    )
    parser.add_argument(
        "--tag",
        action="append",
        default=[],
        help="Only interviews with a quote carrying this tag (repeatable).",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=SEMANTIC_SIMILARITY_THRESHOLD,
        help=f"Minimum semantic similarity (default: {SEMANTIC_SIMILARITY_THRESHOLD}).",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=SEMANTIC_RESULT_LIMIT,
        help=f"Maximum results (default: {SEMANTIC_RESULT_LIMIT}).",
    )
    args = parser.parse_args(argv)

    try:
        search_index = load_search_index(args.output_dir / SEARCH_INDEX_FILE)
        tags_by_interview = load_tags_by_interview(args.output_dir) if args.tag else {}
    except Exception as e:
        logger.error("Failed to load search artifacts from %s: %s", args.output_dir, e)
        return 1

    try:
        if args.mode == "semantic":
            results = semantic_search(
                search_index,
                args.query,
                selected_tags=args.tag,
                tags_by_interview=tags_by_interview,
                threshold=args.threshold,
                limit=args.limit,
            )
        else:
            results = full_text_search(
                search_index,
                args.query,
                selected_tags=args.tag,
                tags_by_interview=tags_by_interview,
            )[: args.limit]
    except QueryParseError as e:
        logger.error("Invalid query %r: %s", args.query, e)
        return 1
    except EmbeddingFailure as e:
        logger.error("Could not embed query: %s", e)
        return 1

    print(json.dumps(results, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    raise SystemExit(main())
