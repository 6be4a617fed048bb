"""Query-time Search

Runs queries against a built SearchIndex the same way the explorer does:

  - full-text: lunr query, results ranked by lunr score
  - semantic: cosine similarity of a query embedding against every
    embedding entry, keeping scores above SEMANTIC_SIMILARITY_THRESHOLD,
    best first, capped at SEMANTIC_RESULT_LIMIT

Both can be narrowed to interviews that have quotes carrying any of a set
of tags.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Set
import logging

import numpy as np

from . import embeddings
from .index_config import SEMANTIC_RESULT_LIMIT, SEMANTIC_SIMILARITY_THRESHOLD
from .models import EnrichedInterview, SearchDocument, SearchEmbedding
from .search_index import SearchIndex

logger = logging.getLogger(__name__)


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine similarity; 0.0 for missing, mismatched or zero vectors."""
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


def interview_tags(interviews: Iterable[EnrichedInterview]) -> Dict[str, Set[str]]:
    """Quote tags per interview id, for tag filtering."""
    return {
        interview.interview_id: {tag for q in interview.analysis.quotes for tag in q.tags}
        for interview in interviews
    }


def _result(doc: SearchDocument, score: float, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    result = doc.to_json_dict()
    result["score"] = score
    if metadata is not None:
        result["metadata"] = metadata
    return result


def filter_by_tags(
    results: List[Dict[str, Any]],
    selected_tags: Optional[Iterable[str]],
    tags_by_interview: Dict[str, Set[str]],
) -> List[Dict[str, Any]]:
    """Keep results whose interview has a quote with any selected tag."""
    selected = set(selected_tags or ())
    if not selected:
        return results
    return [
        r for r in results
        if tags_by_interview.get(r.get("interviewId"), set()) & selected
    ]


def full_text_search(
    search_index: SearchIndex,
    query: str,
    selected_tags: Optional[Iterable[str]] = None,
    tags_by_interview: Optional[Dict[str, Set[str]]] = None,
) -> List[Dict[str, Any]]:
    """
    Keyword search through the lunr index.

    Returns:
        Documents (as dicts) with a `score`, in lunr's ranking order. A blank
        query returns []. lunr query syntax errors propagate.
    """
    if not query or not query.strip():
        return []

    if search_index.index is None:
        return []

    documents = {doc.id: doc for doc in search_index.documents}
    results = []
    for hit in search_index.index.search(query):
        doc = documents.get(hit["ref"])
        if doc is None:
            logger.warning("Full-text hit %s has no matching document", hit["ref"])
            continue
        results.append(_result(doc, float(hit["score"])))

    return filter_by_tags(results, selected_tags, tags_by_interview or {})


def rank_by_similarity(
    query_embedding: Sequence[float],
    candidates: Sequence[SearchEmbedding],
    threshold: float = SEMANTIC_SIMILARITY_THRESHOLD,
    limit: int = SEMANTIC_RESULT_LIMIT,
) -> List[tuple[SearchEmbedding, float]]:
    """Candidates scoring strictly above `threshold`, best first, at most `limit`."""
    scored = [(entry, cosine_similarity(query_embedding, entry.embedding)) for entry in candidates]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return [pair for pair in scored if pair[1] > threshold][:limit]


def semantic_search(
    search_index: SearchIndex,
    query: str,
    selected_tags: Optional[Iterable[str]] = None,
    tags_by_interview: Optional[Dict[str, Set[str]]] = None,
    threshold: float = SEMANTIC_SIMILARITY_THRESHOLD,
    limit: int = SEMANTIC_RESULT_LIMIT,
) -> List[Dict[str, Any]]:
    """
    Embed `query` and rank the semantic entries by cosine similarity.

    Returns:
        Documents (as dicts) with `score` and the entry `metadata`. A blank
        query returns [].

    Raises:
        EmbeddingFailure: If the query cannot be embedded
    """
    query_embedding = embeddings.embed_text(query)
    if not query_embedding:
        return []

    documents = {doc.id: doc for doc in search_index.documents}
    results = []
    for entry, score in rank_by_similarity(query_embedding, search_index.embeddings, threshold, limit):
        doc = documents.get(entry.id)
        if doc is None:
            logger.warning("Semantic hit %s has no matching document", entry.id)
            continue
        results.append(_result(doc, score, entry.metadata))

    return filter_by_tags(results, selected_tags, tags_by_interview or {})
