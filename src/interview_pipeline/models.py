"""Data Models Module

Defines Pydantic models for representing interviews at different stages
of the pipeline: validated input records, enriched records with aggregate
embeddings, and the derived vector-index, cluster and search structures
written for the explorer UI.

Attributes are snake_case in Python and camelCase on disk; unknown source
fields are preserved so the written interviews round-trip everything the
input carried.
"""

from collections import Counter
from typing import List, Optional, Dict, Any, Union
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .index_config import EMBEDDING_DIMENSION


class CamelModel(BaseModel):
    """Base model reading and writing camelCase JSON keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class EmbeddedItem(CamelModel):
    """Any analysis item carrying its own embedding.

    The embedding is either empty (not computed yet) or exactly
    EMBEDDING_DIMENSION floats.
    """
    embedding: List[StrictFloat] = []

    @field_validator("embedding", mode="before")
    @classmethod
    def _empty_when_missing(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("embedding")
    @classmethod
    def _check_dimension(cls, value: List[float]) -> List[float]:
        if value and len(value) != EMBEDDING_DIMENSION:
            raise ValueError(
                f"embedding must be empty or have {EMBEDDING_DIMENSION} "
                f"values, got {len(value)}"
            )
        return value


class Demographics(CamelModel):
    age: Optional[str] = None
    gender: Optional[str] = None
    major: Optional[str] = None
    year: Optional[str] = None
    other: Optional[str] = None


class Summary(EmbeddedItem):
    category: Optional[str] = None
    title: Optional[str] = None
    summary_text: Optional[str] = None


class Theme(EmbeddedItem):
    theme_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    frequency: Optional[Union[StrictInt, StrictFloat]] = None
    impact_score: Optional[Union[StrictInt, StrictFloat]] = None
    actionable: Optional[StrictBool] = None
    category: Optional[str] = None
    related_quote_ids: List[str] = []


class Quote(EmbeddedItem):
    quote_id: str
    quote_text: Optional[str] = None
    context: Optional[str] = None
    timestamp: Optional[str] = None
    tags: List[str] = []
    sentiment: Optional[str] = None
    significance_level: Optional[str] = None
    related_theme_ids: List[str] = []


class TimelinePoint(EmbeddedItem):
    event_description: Optional[str] = None
    timeframe_type: Optional[str] = None
    category: Optional[str] = None
    sentiment: Optional[str] = None


class ImprovementArea(EmbeddedItem):
    area_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    stakeholders: List[str] = []
    action_items: List[str] = []


class Analysis(CamelModel):
    """Analysis sections; an absent section is an empty list."""
    summaries: List[Summary] = []
    themes: List[Theme] = []
    quotes: List[Quote] = []
    timeline_points: List[TimelinePoint] = []
    areas_for_improvement: List[ImprovementArea] = []

    @field_validator(
        "summaries",
        "themes",
        "quotes",
        "timeline_points",
        "areas_for_improvement",
        mode="before",
    )
    @classmethod
    def _empty_when_null(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _unique_ids(self) -> "Analysis":
        # search document ids are built from these, so they must not collide
        for label, ids in (
            ("themeId", [t.theme_id for t in self.themes]),
            ("quoteId", [q.quote_id for q in self.quotes]),
        ):
            duplicates = sorted(i for i, n in Counter(ids).items() if n > 1)
            if duplicates:
                raise ValueError(f"duplicate {label} values: {', '.join(duplicates)}")
        return self


class InterviewRecord(CamelModel):
    """Validated interview record as read from one input file."""
    interview_id: str
    interviewee_name: Optional[str] = None
    interview_date: Optional[str] = None
    demographics: Demographics = Field(default_factory=Demographics)
    analysis: Analysis


class EnrichedInterview(InterviewRecord):
    """Interview record with every embedding populated.

    category_embeddings always holds the four category keys (an empty list
    when the category had no text); tag_embeddings only holds tags whose
    quotes had text.
    """
    category_embeddings: Dict[str, List[float]] = {}
    tag_embeddings: Dict[str, List[float]] = {}


class VectorIndexEntry(CamelModel):
    """One interview's vector in a clustering dimension."""
    id: str
    index: int  # position of the interview in interviews.json
    embedding: List[float]


class Cluster(CamelModel):
    id: str
    center: List[float]
    members: List[int] = []
    size: int = 0
    cohesion: float = 1.0


class SearchDocument(CamelModel):
    """Full-text searchable document (interview, theme or quote)."""
    id: str
    type: str
    interview_id: str
    title: Optional[str] = None
    content: str = ""
    demographics: Optional[str] = None
    date: Optional[str] = None
    category: Optional[str] = None
    context: Optional[str] = None
    sentiment: Optional[str] = None
    tags: Optional[str] = None


class SearchEmbedding(CamelModel):
    """Semantic-search entry pointing back at a SearchDocument id."""
    id: str
    embedding: List[float]
    metadata: Dict[str, Any] = Field(default_factory=dict)
