"""Record Enrichment Module

Populates every missing embedding in a validated interview and derives the
aggregate embeddings used for clustering:

  - item embeddings for summaries, themes, quotes, timeline points and
    improvement areas (existing non-empty embeddings are kept as-is)
  - one aggregate per category (summary, themes, collegeExperience, quotes)
  - one aggregate per quote tag

Aggregates embed the space-joined member texts, not an average of member
vectors. The input record is never modified; an EnrichedInterview copy is
returned.
"""

from typing import Dict, List, Optional, Tuple
import logging

from . import embeddings
from .index_config import (
    CATEGORY_COLLEGE_EXPERIENCE,
    CATEGORY_QUOTES,
    CATEGORY_SUMMARY,
    CATEGORY_THEMES,
    COLLEGE_CATEGORY_KEYWORDS,
)
from .models import (
    EmbeddedItem,
    EnrichedInterview,
    ImprovementArea,
    InterviewRecord,
    Quote,
    Summary,
    Theme,
    TimelinePoint,
)

logger = logging.getLogger(__name__)


def _joined(*parts: Optional[str]) -> str:
    return " ".join(part or "" for part in parts)


def item_embedding_text(item: EmbeddedItem) -> str:
    """Text an analysis item is embedded from."""
    if isinstance(item, Summary):
        return item.summary_text or ""
    if isinstance(item, (Theme, ImprovementArea)):
        return _joined(item.title, item.description)
    if isinstance(item, Quote):
        return item.quote_text or ""
    if isinstance(item, TimelinePoint):
        return item.event_description or ""
    raise TypeError(f"No embedding text rule for {type(item).__name__}")


def _is_college_summary(summary: Summary) -> bool:
    category = (summary.category or "").lower()
    return any(keyword in category for keyword in COLLEGE_CATEGORY_KEYWORDS)


def category_texts(record: InterviewRecord) -> Dict[str, str]:
    """Concatenated text per category aggregate (may be blank)."""
    analysis = record.analysis
    return {
        CATEGORY_SUMMARY: _joined(*(s.summary_text for s in analysis.summaries)),
        CATEGORY_THEMES: " ".join(
            _joined(t.title, t.description) for t in analysis.themes
        ),
        CATEGORY_COLLEGE_EXPERIENCE: _joined(
            *(s.summary_text for s in analysis.summaries if _is_college_summary(s))
        ),
        CATEGORY_QUOTES: _joined(*(q.quote_text for q in analysis.quotes)),
    }


def tag_texts(record: InterviewRecord) -> Dict[str, str]:
    """Concatenated quote text per tag, tags in first-appearance order."""
    texts: Dict[str, List[str]] = {}
    for quote in record.analysis.quotes:
        for tag in dict.fromkeys(quote.tags):
            texts.setdefault(tag, []).append(quote.quote_text or "")
    return {tag: " ".join(parts) for tag, parts in texts.items()}


def _items_needing_embeddings(record: InterviewRecord) -> List[EmbeddedItem]:
    analysis = record.analysis
    sections: Tuple[List, ...] = (
        analysis.summaries,
        analysis.themes,
        analysis.quotes,
        analysis.timeline_points,
        analysis.areas_for_improvement,
    )
    return [item for section in sections for item in section if not item.embedding]


def enrich_record(record: InterviewRecord) -> EnrichedInterview:
    """
    Return an enriched copy of `record` with all embeddings populated.

    Steps:
    1. Embed every analysis item whose embedding is empty
    2. Embed the four category concatenations
    3. Embed the concatenated quote text of each distinct tag

    Running this on an already enriched record re-embeds nothing except the
    aggregates, which are deterministic for a deterministic model.

    Raises:
        EmbeddingFailure: If any embedding call fails; no partial result
            is returned
    """
    working = record.model_copy(deep=True)

    pending = _items_needing_embeddings(working)
    if pending:
        vectors = embeddings.embed_texts([item_embedding_text(item) for item in pending])
        for item, vector in zip(pending, vectors):
            item.embedding = vector

    categories = category_texts(working)
    category_vectors = embeddings.embed_texts(list(categories.values()))
    category_embeddings = dict(zip(categories.keys(), category_vectors))

    tags = {tag: text for tag, text in tag_texts(working).items() if text.strip()}
    tag_vectors = embeddings.embed_texts(list(tags.values()))
    tag_embeddings = {
        tag: vector for tag, vector in zip(tags.keys(), tag_vectors) if vector
    }

    logger.debug(
        "Enriched interview %s: %d item embeddings, %d non-empty categories, %d tags",
        working.interview_id,
        len(pending),
        sum(1 for v in category_embeddings.values() if v),
        len(tag_embeddings),
    )

    return EnrichedInterview.model_validate(
        {
            **working.model_dump(by_alias=True),
            "categoryEmbeddings": category_embeddings,
            "tagEmbeddings": tag_embeddings,
        }
    )
