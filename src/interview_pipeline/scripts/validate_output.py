"""Output Validation Script

Validates that a pipeline output directory is consistent and matches what
the explorer UI expects:
  - All five artifacts present and parseable
  - Every non-empty embedding has the expected dimensionality
  - Every vector-index entry points at an existing interview
  - Each cluster set assigns every indexed interview exactly once, with
    size == len(members) and 0 < cohesion <= 1
  - Manifest counts agree with the artifacts

Usage:
    python -m src.interview_pipeline.scripts.validate_output \\
        --output-dir public/data \\
        --expected-dim 384

Exits with code 0 on success, 1 on validation failure, 2 on argument error.
"""

import argparse
import json
import math
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Tuple, Optional

from src.interview_pipeline.index_config import (
    CATEGORY_NAMES,
    EMBEDDING_DIMENSION,
    OUTPUT_FILES,
    TAGS_KEY,
)

ITEM_SECTIONS = [
    "summaries",
    "themes",
    "quotes",
    "timelinePoints",
    "areasForImprovement",
]


def load_artifact(path: Path) -> Any:
    """Load one JSON artifact.

    Raises:
        ValueError: If the file is missing or not valid JSON
    """
    if not path.exists():
        raise ValueError(f"missing artifact {path.name}")
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"{path.name} is not valid JSON: {e}") from e


def is_finite_number(x: Any) -> bool:
    """Check if value is a finite number (int or float).

    Args:
        x: Value to check

    Returns:
        True if x is a numeric type with a finite value, False otherwise
    """
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)


def validate_embedding(
    vector: Any,
    where: str,
    expected_dim: Optional[int],
    allow_empty: bool = True,
) -> List[str]:
    """Errors for one embedding: not a list, wrong length, non-finite values."""
    if not isinstance(vector, list):
        return [f"[{where}] embedding should be a list, got {type(vector).__name__}"]
    if not vector:
        return [] if allow_empty else [f"[{where}] embedding is empty"]
    errors: List[str] = []
    if expected_dim is not None and len(vector) != expected_dim:
        errors.append(
            f"[{where}] embedding length {len(vector)} != expected_dim {expected_dim}"
        )
    for j, v in enumerate(vector):
        if not is_finite_number(v):
            errors.append(
                f"[{where}] embedding[{j}] is not a finite number (got {repr(v)})"
            )
            break  # no need to spam too much
    return errors


def validate_interviews(
    interviews: Any,
    expected_dim: Optional[int],
) -> Tuple[List[str], List[str]]:
    """Validate interviews.json.

    Returns:
        (errors, warnings)
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(interviews, list):
        return [f"interviews should be a list, got {type(interviews).__name__}"], warnings

    seen_ids = set()
    for idx, interview in enumerate(interviews):
        iid = interview.get("interviewId")
        if not isinstance(iid, str):
            errors.append(f"[interview {idx}] missing 'interviewId'")
        elif iid in seen_ids:
            warnings.append(f"[interview {idx}] duplicate interviewId {iid!r}")
        seen_ids.add(iid)

        analysis = interview.get("analysis") or {}
        for section in ITEM_SECTIONS:
            for j, item in enumerate(analysis.get(section) or []):
                where = f"{iid}.{section}[{j}]"
                errors.extend(validate_embedding(item.get("embedding", []), where, expected_dim))

        categories = interview.get("categoryEmbeddings")
        if not isinstance(categories, dict):
            errors.append(f"[{iid}] missing 'categoryEmbeddings'")
        else:
            for name in CATEGORY_NAMES:
                if name not in categories:
                    errors.append(f"[{iid}] categoryEmbeddings missing '{name}'")
                    continue
                errors.extend(
                    validate_embedding(categories[name], f"{iid}.categoryEmbeddings.{name}", expected_dim)
                )

        for tag, vector in (interview.get("tagEmbeddings") or {}).items():
            errors.extend(
                validate_embedding(vector, f"{iid}.tagEmbeddings.{tag}", expected_dim, allow_empty=False)
            )

    return errors, warnings


def _entry_sets(vector_indices: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    sets = {name: vector_indices.get(name) or [] for name in CATEGORY_NAMES}
    for tag, entries in (vector_indices.get(TAGS_KEY) or {}).items():
        sets[f"{TAGS_KEY}.{tag}"] = entries or []
    return sets


def validate_vector_indices(
    vector_indices: Any,
    interview_count: int,
    expected_dim: Optional[int],
) -> List[str]:
    if not isinstance(vector_indices, dict):
        return [f"vector indices should be an object, got {type(vector_indices).__name__}"]

    errors: List[str] = []
    for name, entries in _entry_sets(vector_indices).items():
        for j, entry in enumerate(entries):
            where = f"{name}[{j}]"
            index = entry.get("index")
            if not isinstance(index, int) or not 0 <= index < interview_count:
                errors.append(f"[{where}] index {index!r} out of range 0..{interview_count - 1}")
            errors.extend(
                validate_embedding(entry.get("embedding"), where, expected_dim, allow_empty=False)
            )
    return errors


def validate_cluster_set(
    name: str,
    clusters: List[Dict[str, Any]],
    entries: List[Dict[str, Any]],
) -> List[str]:
    """Each entry index assigned exactly once; sizes and cohesion sane."""
    errors: List[str] = []
    assigned: Counter = Counter()
    for cluster in clusters:
        cid = cluster.get("id")
        members = cluster.get("members") or []
        assigned.update(members)
        if cluster.get("size") != len(members):
            errors.append(
                f"[{name}.{cid}] size {cluster.get('size')!r} != {len(members)} members"
            )
        cohesion = cluster.get("cohesion")
        if not is_finite_number(cohesion) or not 0 < cohesion <= 1:
            errors.append(f"[{name}.{cid}] cohesion {cohesion!r} outside (0, 1]")

    expected = Counter(entry.get("index") for entry in entries)
    if assigned != expected:
        missing = sorted(set(expected) - set(assigned))
        doubled = sorted(i for i, n in assigned.items() if n > 1)
        errors.append(
            f"[{name}] membership mismatch: missing={missing}, assigned more than once={doubled}"
        )
    return errors


def validate_clusters(clusters: Any, vector_indices: Dict[str, Any]) -> Tuple[List[str], List[str]]:
    if not isinstance(clusters, dict):
        return [f"clusters should be an object, got {type(clusters).__name__}"], []

    errors: List[str] = []
    warnings: List[str] = []
    sets = _entry_sets(vector_indices)
    tag_clusters = clusters.get(TAGS_KEY) or {}

    for name in CATEGORY_NAMES:
        if name not in clusters:
            errors.append(f"clusters missing '{name}'")
            continue
        errors.extend(validate_cluster_set(name, clusters[name], sets[name]))

    for tag, entries in (vector_indices.get(TAGS_KEY) or {}).items():
        if tag not in tag_clusters:
            if len(entries) >= 2:
                errors.append(f"clusters missing tag '{tag}' with {len(entries)} interviews")
            else:
                warnings.append(f"tag '{tag}' not clustered ({len(entries)} interview)")
            continue
        errors.extend(validate_cluster_set(f"{TAGS_KEY}.{tag}", tag_clusters[tag], entries))

    return errors, warnings


def validate_search_index(search: Any, expected_dim: Optional[int]) -> List[str]:
    if not isinstance(search, dict):
        return [f"search index should be an object, got {type(search).__name__}"]
    errors: List[str] = []
    for key in ("index", "documents", "embeddings"):
        if key not in search:
            errors.append(f"search index missing '{key}'")
    doc_ids = {doc.get("id") for doc in search.get("documents") or []}
    for j, entry in enumerate(search.get("embeddings") or []):
        if entry.get("id") not in doc_ids:
            errors.append(f"[embeddings[{j}]] id {entry.get('id')!r} has no document")
        errors.extend(
            validate_embedding(entry.get("embedding"), f"embeddings[{j}]", expected_dim, allow_empty=False)
        )
    return errors


def validate_metadata(
    metadata: Any,
    interview_count: int,
    document_count: int,
    tags: List[str],
    expected_dim: Optional[int],
) -> List[str]:
    if not isinstance(metadata, dict):
        return [f"metadata should be an object, got {type(metadata).__name__}"]
    errors: List[str] = []
    for key in ("processedAt", "failedFiles", "clusterTypes"):
        if key not in metadata:
            errors.append(f"metadata missing '{key}'")
    if metadata.get("totalInterviews") != interview_count:
        errors.append(
            f"metadata.totalInterviews {metadata.get('totalInterviews')!r} != {interview_count} interviews"
        )
    if metadata.get("searchDocuments") != document_count:
        errors.append(
            f"metadata.searchDocuments {metadata.get('searchDocuments')!r} != {document_count} documents"
        )
    if expected_dim is not None and metadata.get("embeddingDimension") != expected_dim:
        errors.append(
            f"metadata.embeddingDimension {metadata.get('embeddingDimension')!r} != {expected_dim}"
        )
    if list(metadata.get("tags") or []) != tags:
        errors.append("metadata.tags does not match vector-indices tags")
    return errors


def validate_artifacts(
    output_dir: Path,
    expected_dim: Optional[int] = EMBEDDING_DIMENSION,
) -> Tuple[List[str], List[str]]:
    """Validate every artifact in `output_dir`.

    Returns:
        (errors, warnings)

    Raises:
        ValueError: If an artifact is missing or unparseable
    """
    output_dir = Path(output_dir)
    interviews = load_artifact(output_dir / OUTPUT_FILES["interviews"])
    vector_indices = load_artifact(output_dir / OUTPUT_FILES["vector_indices"])
    clusters = load_artifact(output_dir / OUTPUT_FILES["clusters"])
    search = load_artifact(output_dir / OUTPUT_FILES["search_index"])
    metadata = load_artifact(output_dir / OUTPUT_FILES["metadata"])

    errors, warnings = validate_interviews(interviews, expected_dim)
    interview_count = len(interviews) if isinstance(interviews, list) else 0

    errors.extend(validate_vector_indices(vector_indices, interview_count, expected_dim))
    if isinstance(vector_indices, dict):
        cluster_errors, cluster_warnings = validate_clusters(clusters, vector_indices)
        errors.extend(cluster_errors)
        warnings.extend(cluster_warnings)

    errors.extend(validate_search_index(search, expected_dim))
    document_count = len(search.get("documents") or []) if isinstance(search, dict) else 0
    tags = list((vector_indices.get(TAGS_KEY) or {}).keys()) if isinstance(vector_indices, dict) else []
    errors.extend(validate_metadata(metadata, interview_count, document_count, tags, expected_dim))

    return errors, warnings


def main(argv: list[str] | None = None) -> None:
    """Validate a pipeline output directory.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:]

    Raises:
        SystemExit: With code 0 on success, 1 on validation failure
    """
    parser = argparse.ArgumentParser(
        description="Validate interview pipeline output artifacts."
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default="public/data",
        help="Directory containing the pipeline artifacts",
    )
    parser.add_argument(
        "--expected-dim",
        type=int,
        default=EMBEDDING_DIMENSION,
        help=f"Expected embedding dimensionality (default: {EMBEDDING_DIMENSION}).",
    )
    args = parser.parse_args(argv)

    try:
        all_errors, all_warnings = validate_artifacts(Path(args.output_dir), args.expected_dim)
    except Exception as e:
        print(f"FAILED TO LOAD ARTIFACTS: {e}")
        raise SystemExit(1)

    if all_errors:
        print("VALIDATION FAILED:\n")
        for err in all_errors:
            print(err)
        print(f"\nTotal errors: {len(all_errors)}")
        if all_warnings:
            print(f"Total warnings: {len(all_warnings)}")
        raise SystemExit(1)

    print("VALIDATION PASSED")
    print(f"Output directory: {args.output_dir}")
    if all_warnings:
        print("\nWarnings (non-fatal):")
        for w in all_warnings:
            print(w)
        print(f"\nTotal warnings: {len(all_warnings)}")

    raise SystemExit(0)


if __name__ == "__main__":
    main()
