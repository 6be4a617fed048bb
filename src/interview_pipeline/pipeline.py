"""
Interview Processing Pipeline

Turns a directory of interview JSON files into the artifacts the explorer
UI reads: enriched interviews, vector indices, clusters, a search index and
a metadata manifest.

Features:
- Per-file validation and enrichment on a bounded thread pool
- Failed files are recorded and excluded; the batch always completes
- Category and tag clustering with a seedable random source
- Full-text + semantic search index build
- Progress tracking and structured logging
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import json
import logging
import os
import time

import numpy as np
from pydantic import BaseModel

from .clustering import cluster_vector_indices
from .embeddings import EmbeddingFailure
from .enricher import enrich_record
from .index_config import (
    CLUSTER_TYPES,
    DEFAULT_CLUSTER_COUNT,
    EMBEDDING_DIMENSION,
    OUTPUT_FILES,
    TAGS_KEY,
)
from .loaders import ValidationFailure, discover_input_files, load_interview
from .models import EnrichedInterview
from .search_index import build_search_index
from .vector_index import build_vector_indices


logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class FileFailure(BaseModel):
    """Why one input file was excluded from the run."""
    file: str
    stage: str  # "validation" or "embedding"
    reason: str
    errors: List[str] = []


class FileResult(BaseModel):
    file: str
    interview: Optional[EnrichedInterview] = None
    failure: Optional[FileFailure] = None

    @property
    def success(self) -> bool:
        return self.interview is not None


class PipelineFailure(Exception):
    """One or more input files failed; the other artifacts were still built."""

    def __init__(self, failures: List[FileFailure]):
        self.failures = failures
        names = ", ".join(f.file for f in failures)
        super().__init__(f"{len(failures)} file(s) failed: {names}")


class PipelineResult(BaseModel):
    total_files: int
    interviews: List[EnrichedInterview]
    failures: List[FileFailure]
    output_paths: Dict[str, Path] = {}
    metadata: Dict[str, Any] = {}

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PipelineFailure(self.failures)


def process_interview_file(path: Path) -> FileResult:
    """
    Validate and enrich one input file.

    Validation and embedding failures are returned as a FileResult with a
    failure; anything else is a bug and propagates.
    """
    logger.info("Processing: %s", path.name)
    t0 = time.time()

    try:
        record = load_interview(path)
    except ValidationFailure as e:
        logger.error("Schema validation failed for %s: %s", path.name, "; ".join(e.errors))
        return FileResult(
            file=path.name,
            failure=FileFailure(
                file=path.name, stage="validation", reason=str(e), errors=e.errors
            ),
        )

    try:
        interview = enrich_record(record)
    except EmbeddingFailure as e:
        logger.error("Error processing %s: %s", path.name, e)
        return FileResult(
            file=path.name,
            failure=FileFailure(file=path.name, stage="embedding", reason=str(e)),
        )

    logger.debug("✓ Enriched %s in %.2fs", path.name, time.time() - t0)
    return FileResult(file=path.name, interview=interview)


def _deployment_id() -> str:
    run_id = os.getenv("GITHUB_RUN_ID")
    if run_id:
        return run_id
    return f"local_{int(time.time() * 1000)}"


def _processed_at() -> str:
    """UTC timestamp in JavaScript's toISOString() format."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def build_metadata(
    interviews: List[EnrichedInterview],
    failures: List[FileFailure],
    search_documents: int,
    tags: Iterable[str],
) -> Dict[str, Any]:
    return {
        "processedAt": _processed_at(),
        "deploymentId": _deployment_id(),
        "totalInterviews": len(interviews),
        "failedFiles": len(failures),
        "clusterTypes": list(CLUSTER_TYPES),
        "searchDocuments": search_documents,
        "embeddingDimension": EMBEDDING_DIMENSION,
        "tags": list(tags),
    }


def _clusters_to_json(clusters: Dict[str, Any]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for name, value in clusters.items():
        if name == TAGS_KEY:
            data[name] = {
                tag: [c.to_json_dict() for c in tag_clusters]
                for tag, tag_clusters in value.items()
            }
        else:
            data[name] = [c.to_json_dict() for c in value]
    return data


def _save_json(path: Path, data: Any) -> None:
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    logger.info("✓ Saved: %s", path.name)


def run_pipeline(
    data_dir: Path | str = "examples",
    output_dir: Path | str = "public/data",
    k: int = DEFAULT_CLUSTER_COUNT,
    seed: Optional[int] = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
    limit: Optional[int] = None,
    dry_run: bool = False,
) -> PipelineResult:
    """
    Run the complete processing pipeline.

    Pipeline Steps:
    1. Discover interview files
    2. Validate and enrich each file (in parallel, failures recorded)
    3. Build vector indices
    4. Cluster every category set and every tag set with >= 2 interviews
    5. Build the search index
    6. Write artifacts and metadata manifest

    Args:
        data_dir: Directory holding one JSON file per interview
        output_dir: Directory for the five output artifacts
        k: Clusters per category set
        seed: Seed for k-means++ (None = nondeterministic)
        max_workers: Files enriched concurrently
        limit: Maximum files to process (None = all)
        dry_run: If True, build everything but write nothing

    Returns:
        PipelineResult; call raise_for_failures() to turn failed files into
        a PipelineFailure

    Raises:
        FileNotFoundError: If data_dir doesn't exist
        OSError: If artifacts cannot be written
    """
    data_dir = Path(data_dir)
    output_dir = Path(output_dir)
    job_start = time.time()

    # ========== STEP 1: DISCOVER INPUT FILES ==========
    logger.info("STEP 1/6: Discovering interview files in %s", data_dir)
    files = discover_input_files(data_dir)
    total_found = len(files)
    if limit is not None:
        logger.info("Applying limit: %d files", limit)
        files = files[:limit]
    logger.info("✓ Found %d interview files", total_found)

    # ========== STEP 2: VALIDATE & ENRICH ==========
    t1 = time.time()
    logger.info("STEP 2/6: Validating and enriching %d files (workers=%d)", len(files), max_workers)

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        # map() keeps discovery order, so interview positions are stable
        results = list(executor.map(process_interview_file, files))

    interviews = [r.interview for r in results if r.success]
    failures = [r.failure for r in results if not r.success]

    logger.info("Successfully processed: %d", len(interviews))
    logger.info("Failed: %d", len(failures))
    if failures:
        logger.error("Failed files: %s", [f.file for f in failures])
    logger.info("✓ Enrichment completed in %.2fs", time.time() - t1)

    # ========== STEP 3: VECTOR INDICES ==========
    logger.info("STEP 3/6: Building vector indices")
    vector_indices = build_vector_indices(interviews)

    # ========== STEP 4: CLUSTERING ==========
    t4 = time.time()
    logger.info("STEP 4/6: Performing clustering (k=%d, seed=%s)", k, seed)
    clusters = cluster_vector_indices(vector_indices, k=k, rng=np.random.default_rng(seed))
    logger.info("✓ Clustering completed in %.2fs", time.time() - t4)

    # ========== STEP 5: SEARCH INDEX ==========
    t5 = time.time()
    logger.info("STEP 5/6: Building search index")
    search_index = build_search_index(interviews)
    logger.info("✓ Search index built in %.2fs", time.time() - t5)

    metadata = build_metadata(
        interviews,
        failures,
        search_documents=len(search_index.documents),
        tags=vector_indices.tags.keys(),
    )
    result = PipelineResult(
        total_files=len(files),
        interviews=interviews,
        failures=failures,
        metadata=metadata,
    )

    # ========== STEP 6: WRITE ARTIFACTS ==========
    if dry_run:
        logger.info("STEP 6/6: DRY RUN, skipping artifact writes")
        return result

    logger.info("STEP 6/6: Writing artifacts to %s", output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        artifacts = {
            "interviews": [i.to_json_dict() for i in interviews],
            "vector_indices": vector_indices.to_json_dict(),
            "clusters": _clusters_to_json(clusters),
            "search_index": search_index.to_json(),
            "metadata": metadata,
        }
        for name, data in artifacts.items():
            path = output_dir / OUTPUT_FILES[name]
            _save_json(path, data)
            result.output_paths[name] = path
    except Exception:
        logger.exception("Failed to write artifacts to %s", output_dir)
        raise

    logger.debug(
        "Pipeline completed in %.2fs: %d files -> %d interviews, %d failed",
        time.time() - job_start,
        len(files),
        len(interviews),
        len(failures),
    )
    return result
