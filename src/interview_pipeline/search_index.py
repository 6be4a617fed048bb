"""Search Index Builder

Flattens enriched interviews into a search corpus with one document per
interview, theme and quote, then builds:

  - a lunr full-text index over title, content, demographics, category,
    sentiment and tags (serialized in the lunr.js format the explorer loads)
  - a parallel list of {id, embedding, metadata} for semantic lookup

Documents whose source has no embedding stay full-text searchable and are
simply missing from the semantic list. An empty corpus has no lunr index
(written as null).
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import json
import logging

from lunr import lunr
from lunr.index import Index
from pydantic import BaseModel, ConfigDict

from .index_config import CATEGORY_SUMMARY, SEARCH_FIELDS, SEARCH_REF_FIELD
from .models import EnrichedInterview, SearchDocument, SearchEmbedding

logger = logging.getLogger(__name__)


class SearchIndex(BaseModel):
    """Full-text index plus the documents and embeddings it refers to."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    index: Optional[Index] = None
    documents: List[SearchDocument]
    embeddings: List[SearchEmbedding]

    def to_json(self) -> Dict[str, Any]:
        """Shape written to search-index.json."""
        return {
            "index": self.index.serialize() if self.index is not None else None,
            "documents": [doc.to_json_dict() for doc in self.documents],
            "embeddings": [entry.to_json_dict() for entry in self.embeddings],
        }

    def document(self, doc_id: str) -> SearchDocument | None:
        for doc in self.documents:
            if doc.id == doc_id:
                return doc
        return None


def interview_doc_id(interview_id: str) -> str:
    return f"interview_{interview_id}"


def theme_doc_id(interview_id: str, theme_id: str) -> str:
    return f"theme_{interview_id}_{theme_id}"


def quote_doc_id(interview_id: str, quote_id: str) -> str:
    return f"quote_{interview_id}_{quote_id}"


def _interview_documents(
    interview: EnrichedInterview,
) -> Tuple[List[SearchDocument], List[SearchEmbedding]]:
    iid = interview.interview_id
    analysis = interview.analysis
    documents: List[SearchDocument] = []
    embeddings: List[SearchEmbedding] = []

    doc_id = interview_doc_id(iid)
    documents.append(
        SearchDocument(
            id=doc_id,
            type="interview",
            interview_id=iid,
            title=interview.interviewee_name or iid,
            content=" ".join(s.summary_text or "" for s in analysis.summaries),
            demographics=json.dumps(
                interview.demographics.to_json_dict(),
                ensure_ascii=False,
                separators=(",", ":"),
            ),
            date=interview.interview_date,
        )
    )
    summary_vector = interview.category_embeddings.get(CATEGORY_SUMMARY) or []
    if summary_vector:
        embeddings.append(
            SearchEmbedding(
                id=doc_id,
                embedding=summary_vector,
                metadata={"type": "interview", "interviewId": iid},
            )
        )

    for theme in analysis.themes:
        doc_id = theme_doc_id(iid, theme.theme_id)
        documents.append(
            SearchDocument(
                id=doc_id,
                type="theme",
                interview_id=iid,
                title=theme.title,
                content=theme.description or "",
                category=theme.category,
            )
        )
        if theme.embedding:
            embeddings.append(
                SearchEmbedding(
                    id=doc_id,
                    embedding=theme.embedding,
                    metadata={"type": "theme", "interviewId": iid, "themeId": theme.theme_id},
                )
            )

    for quote in analysis.quotes:
        doc_id = quote_doc_id(iid, quote.quote_id)
        documents.append(
            SearchDocument(
                id=doc_id,
                type="quote",
                interview_id=iid,
                content=quote.quote_text or "",
                context=quote.context,
                sentiment=quote.sentiment,
                tags=" ".join(quote.tags),
            )
        )
        if quote.embedding:
            embeddings.append(
                SearchEmbedding(
                    id=doc_id,
                    embedding=quote.embedding,
                    metadata={
                        "type": "quote",
                        "interviewId": iid,
                        "quoteId": quote.quote_id,
                        "tags": list(quote.tags),
                    },
                )
            )

    return documents, embeddings


def _field_extractor(field_name: str) -> Callable[[Dict[str, Any]], str]:
    def extract(doc: Dict[str, Any]) -> str:
        return doc.get(field_name) or ""
    return extract


def build_full_text_index(documents: Sequence[SearchDocument]) -> Index:
    """lunr index over SEARCH_FIELDS with the document id as ref."""
    fields = [
        {"field_name": name, "extractor": _field_extractor(name)}
        for name in SEARCH_FIELDS
    ]
    return lunr(
        ref=SEARCH_REF_FIELD,
        fields=fields,
        documents=[doc.to_json_dict() for doc in documents],
    )


def build_search_index(interviews: Sequence[EnrichedInterview]) -> SearchIndex:
    """
    Build the search corpus for a run.

    Produces exactly one document per interview, theme and quote, in that
    order per interview, and one embedding entry per document whose source
    embedding is non-empty.
    """
    documents: List[SearchDocument] = []
    embeddings: List[SearchEmbedding] = []
    for interview in interviews:
        docs, vectors = _interview_documents(interview)
        documents.extend(docs)
        embeddings.extend(vectors)

    index = build_full_text_index(documents) if documents else None
    logger.info(
        "Built search index: %d documents, %d embeddings",
        len(documents),
        len(embeddings),
    )
    return SearchIndex(index=index, documents=documents, embeddings=embeddings)


def load_search_index(path: str | Path) -> SearchIndex:
    """Restore a SearchIndex from a search-index.json artifact."""
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return SearchIndex(
        index=Index.load(data["index"]) if data.get("index") else None,
        documents=[SearchDocument.model_validate(d) for d in data.get("documents", [])],
        embeddings=[SearchEmbedding.model_validate(e) for e in data.get("embeddings", [])],
    )
