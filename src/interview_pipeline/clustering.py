"""Clustering Engine

Partitions a set of VectorIndexEntry into k clusters with k-means++ seeding
followed by Lloyd's iterations, and scores each cluster's cohesion.

Behaviour worth knowing:
  - k is reduced to the number of entries; an empty set yields no clusters
  - nearest-center ties go to the lowest cluster index
  - a cluster that loses all members keeps its previous center
  - vectors of different lengths are infinitely far apart
  - randomness comes from an injectable numpy Generator, so a seeded
    generator gives reproducible clusters
"""

from typing import Dict, List, NamedTuple, Optional, Sequence
import logging
import math

import numpy as np

from .index_config import (
    CONVERGENCE_TOLERANCE,
    DEFAULT_CLUSTER_COUNT,
    MAX_KMEANS_ITERATIONS,
    MAX_TAG_CLUSTERS,
    MIN_TAG_MEMBERS,
    TAGS_KEY,
)
from .models import Cluster, VectorIndexEntry
from .vector_index import VectorIndices

logger = logging.getLogger(__name__)


class KMeansResult(NamedTuple):
    centers: List[np.ndarray]
    assignments: List[List[int]]  # positions into the input vectors
    iterations: int
    converged: bool


def euclidean_distance(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Euclidean distance; inf when either side is missing or lengths differ."""
    if a is None or b is None:
        return math.inf
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        return math.inf
    return float(np.linalg.norm(a - b))


def kmeans_plus_plus_seeds(
    vectors: Sequence[np.ndarray],
    k: int,
    rng: np.random.Generator,
) -> List[int]:
    """
    Choose k initial center positions with k-means++.

    The first center is uniform. Each further center is drawn with
    probability proportional to the squared distance from a point to its
    nearest chosen center; chosen points carry no mass. When no mass is
    left (every remaining point duplicates a center) the draw is uniform
    over the unchosen points.
    """
    n = len(vectors)
    chosen = [int(rng.integers(n))]

    while len(chosen) < k:
        weights = np.zeros(n, dtype=np.float64)
        for i, vector in enumerate(vectors):
            if i in chosen:
                continue
            nearest = min(euclidean_distance(vector, vectors[c]) for c in chosen)
            weights[i] = nearest * nearest

        unreachable = np.flatnonzero(np.isinf(weights))
        if unreachable.size:
            # mismatched lengths; any of them is as far away as possible
            next_idx = int(rng.choice(unreachable))
        elif weights.sum() > 0:
            next_idx = int(rng.choice(n, p=weights / weights.sum()))
        else:
            remaining = [i for i in range(n) if i not in chosen]
            next_idx = int(rng.choice(remaining))
        chosen.append(next_idx)

    return chosen


def _assign(vectors: Sequence[np.ndarray], centers: Sequence[np.ndarray]) -> List[List[int]]:
    assignments: List[List[int]] = [[] for _ in centers]
    for i, vector in enumerate(vectors):
        distances = [euclidean_distance(vector, center) for center in centers]
        # argmin returns the first minimum, and 0 when every distance is inf
        assignments[int(np.argmin(distances))].append(i)
    return assignments


def _mean_center(
    vectors: Sequence[np.ndarray],
    members: Sequence[int],
    previous: np.ndarray,
) -> np.ndarray:
    same_shape = [vectors[i] for i in members if vectors[i].shape == previous.shape]
    if not same_shape:
        return previous
    return np.mean(np.stack(same_shape), axis=0)


def run_kmeans(
    vectors: Sequence[np.ndarray],
    k: int,
    rng: np.random.Generator,
    max_iterations: int = MAX_KMEANS_ITERATIONS,
    tolerance: float = CONVERGENCE_TOLERANCE,
) -> KMeansResult:
    """k-means++ seeding plus at most `max_iterations` Lloyd rounds."""
    seeds = kmeans_plus_plus_seeds(vectors, k, rng)
    centers = [vectors[i].copy() for i in seeds]
    assignments: List[List[int]] = [[] for _ in centers]

    iterations = 0
    converged = False
    while iterations < max_iterations:
        iterations += 1
        assignments = _assign(vectors, centers)

        moved = False
        for c, members in enumerate(assignments):
            if not members:
                continue
            new_center = _mean_center(vectors, members, centers[c])
            if np.any(np.abs(new_center - centers[c]) > tolerance):
                moved = True
            centers[c] = new_center

        if not moved:
            converged = True
            break

    return KMeansResult(centers, assignments, iterations, converged)


def cluster_cohesion(member_vectors: Sequence[np.ndarray], center: np.ndarray) -> float:
    """
    1 / (1 + mean distance to center); 1.0 for empty or singleton clusters.

    Members whose length differs from the center's are left out, as they
    are for the center update, so cohesion stays in (0, 1].
    """
    comparable = [v for v in member_vectors if np.shape(v) == np.shape(center)]
    if len(comparable) <= 1:
        return 1.0
    mean_distance = sum(euclidean_distance(v, center) for v in comparable) / len(comparable)
    return 1.0 / (1.0 + mean_distance)


def cluster_entries(
    entries: Sequence[VectorIndexEntry],
    k: int = DEFAULT_CLUSTER_COUNT,
    rng: Optional[np.random.Generator] = None,
    max_iterations: int = MAX_KMEANS_ITERATIONS,
    tolerance: float = CONVERGENCE_TOLERANCE,
) -> List[Cluster]:
    """
    Cluster one vector set.

    Args:
        entries: Vectors to cluster; members are reported by entry.index
        k: Requested cluster count, reduced to len(entries) when larger
        rng: Random source for seeding (default: a fresh unseeded generator)
        max_iterations: Upper bound on Lloyd rounds
        tolerance: Largest per-coordinate center move counted as converged

    Returns:
        min(k, len(entries)) clusters named cluster_0..cluster_{k-1}; [] for
        empty input. Clusters left empty are still returned with size 0.
    """
    if not entries:
        return []
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")

    rng = rng if rng is not None else np.random.default_rng()
    vectors = [np.asarray(entry.embedding, dtype=np.float64) for entry in entries]
    actual_k = min(k, len(entries))

    result = run_kmeans(vectors, actual_k, rng, max_iterations, tolerance)
    logger.debug(
        "k-means on %d entries: k=%d, iterations=%d, converged=%s",
        len(entries), actual_k, result.iterations, result.converged,
    )

    clusters: List[Cluster] = []
    for c, (center, members) in enumerate(zip(result.centers, result.assignments)):
        clusters.append(
            Cluster(
                id=f"cluster_{c}",
                center=center.tolist(),
                members=[entries[i].index for i in members],
                size=len(members),
                cohesion=cluster_cohesion([vectors[i] for i in members], center),
            )
        )
    return clusters


def tag_cluster_count(member_count: int) -> int:
    """Clusters requested for a tag set: at most 2, about two members each."""
    return min(MAX_TAG_CLUSTERS, math.ceil(member_count / 2))


def cluster_vector_indices(
    indices: VectorIndices,
    k: int = DEFAULT_CLUSTER_COUNT,
    rng: Optional[np.random.Generator] = None,
) -> Dict[str, object]:
    """
    Cluster every category set with k and every tag set that has at least
    MIN_TAG_MEMBERS entries with tag_cluster_count().

    Returns:
        {"summary": [Cluster], ..., "tags": {tag: [Cluster]}}
    """
    rng = rng if rng is not None else np.random.default_rng()
    results: Dict[str, object] = {}

    for name, entries in indices.named_sets().items():
        results[name] = cluster_entries(entries, k=k, rng=rng)
        logger.info("Clustered %s: %d entries -> %d clusters", name, len(entries), len(results[name]))

    tag_results: Dict[str, List[Cluster]] = {}
    skipped = 0
    for tag, entries in indices.tags.items():
        if len(entries) < MIN_TAG_MEMBERS:
            skipped += 1
            continue
        tag_results[tag] = cluster_entries(entries, k=tag_cluster_count(len(entries)), rng=rng)
    results[TAGS_KEY] = tag_results

    logger.info(
        "Clustered %d tag sets (%d skipped with fewer than %d interviews)",
        len(tag_results), skipped, MIN_TAG_MEMBERS,
    )
    return results
