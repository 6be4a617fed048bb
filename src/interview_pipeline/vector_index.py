"""Vector Index Builder

Projects enriched interviews into named sets of VectorIndexEntry, one set
per clustering dimension: the four category aggregates plus one set per
quote tag seen anywhere in the corpus. Interviews with an empty aggregate
for a set are simply absent from it.
"""

from typing import Dict, List, Sequence
import logging

from pydantic import Field

from .index_config import CATEGORY_NAMES, TAGS_KEY
from .models import CamelModel, EnrichedInterview, VectorIndexEntry

logger = logging.getLogger(__name__)


class VectorIndices(CamelModel):
    """All vector sets for one pipeline run, keyed as vector-indices.json."""
    summary: List[VectorIndexEntry] = []
    themes: List[VectorIndexEntry] = []
    college_experience: List[VectorIndexEntry] = []
    quotes: List[VectorIndexEntry] = []
    tags: Dict[str, List[VectorIndexEntry]] = Field(default_factory=dict)

    def named_sets(self) -> Dict[str, List[VectorIndexEntry]]:
        """Category sets keyed by their on-disk name (tags excluded)."""
        by_name = {
            "summary": self.summary,
            "themes": self.themes,
            "collegeExperience": self.college_experience,
            "quotes": self.quotes,
        }
        return {name: by_name[name] for name in CATEGORY_NAMES}

    def to_json_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            name: [entry.to_json_dict() for entry in entries]
            for name, entries in self.named_sets().items()
        }
        data[TAGS_KEY] = {
            tag: [entry.to_json_dict() for entry in entries]
            for tag, entries in self.tags.items()
        }
        return data


def collect_tag_universe(interviews: Sequence[EnrichedInterview]) -> List[str]:
    """Every quote tag across the corpus, in first-appearance order."""
    seen: Dict[str, None] = {}
    for interview in interviews:
        for quote in interview.analysis.quotes:
            for tag in quote.tags:
                seen.setdefault(tag, None)
    return list(seen)


def build_vector_indices(interviews: Sequence[EnrichedInterview]) -> VectorIndices:
    """
    Build the per-category and per-tag vector sets.

    Entry `index` is the interview's position in `interviews`, which is
    also its position in interviews.json. Entry order follows input order.
    """
    category_sets: Dict[str, List[VectorIndexEntry]] = {
        name: [] for name in CATEGORY_NAMES
    }
    tag_universe = collect_tag_universe(interviews)
    tag_sets: Dict[str, List[VectorIndexEntry]] = {}

    for idx, interview in enumerate(interviews):
        for name in CATEGORY_NAMES:
            vector = interview.category_embeddings.get(name) or []
            if vector:
                category_sets[name].append(
                    VectorIndexEntry(id=interview.interview_id, index=idx, embedding=vector)
                )

        for tag in tag_universe:
            vector = interview.tag_embeddings.get(tag) or []
            if vector:
                tag_sets.setdefault(tag, []).append(
                    VectorIndexEntry(id=interview.interview_id, index=idx, embedding=vector)
                )

    logger.info(
        "Built vector indices: %s; %d tag sets from %d distinct tags",
        ", ".join(f"{name}={len(entries)}" for name, entries in category_sets.items()),
        len(tag_sets),
        len(tag_universe),
    )

    return VectorIndices(
        summary=category_sets["summary"],
        themes=category_sets["themes"],
        college_experience=category_sets["collegeExperience"],
        quotes=category_sets["quotes"],
        tags=tag_sets,
    )
