import json

from src.interview_pipeline.index_config import EMBEDDING_DIMENSION
from src.interview_pipeline.models import EnrichedInterview
from src.interview_pipeline.search_index import (
    build_search_index,
    load_search_index,
)


def test_one_document_per_interview_theme_and_quote(enriched_interviews):
    search_index = build_search_index(enriched_interviews)

    # 3 interviews + 3 themes + 5 quotes
    assert len(search_index.documents) == 11
    types = [d.type for d in search_index.documents]
    assert types.count("interview") == 3
    assert types.count("theme") == 3
    assert types.count("quote") == 5


def test_document_ids_and_fields(enriched_interviews):
    search_index = build_search_index(enriched_interviews)

    interview = search_index.document("interview_int-001")
    assert interview.title == "Alex Rivera"
    assert interview.date == "2024-03-01"
    assert json.loads(interview.demographics) == {
        "age": "20", "major": "Biology", "year": "Junior"
    }
    assert interview.content.startswith("Alex found the transition")

    theme = search_index.document("theme_int-001_t1")
    assert theme.title == "Mentorship"
    assert theme.category == "support"

    quote = search_index.document("quote_int-002_q1")
    assert quote.content == "My study group kept me going."
    assert quote.tags == "growth support"
    assert quote.sentiment == "positive"
    assert quote.interview_id == "int-002"


def test_interview_without_name_uses_its_id_as_title(enriched_interviews):
    search_index = build_search_index(enriched_interviews)

    assert search_index.document("interview_int-003").title == "int-003"


def test_embeddings_cover_every_document_with_a_vector(enriched_interviews):
    search_index = build_search_index(enriched_interviews)

    assert [e.id for e in search_index.embeddings] == [d.id for d in search_index.documents]
    assert all(len(e.embedding) == EMBEDDING_DIMENSION for e in search_index.embeddings)

    quote_entry = next(e for e in search_index.embeddings if e.id == "quote_int-002_q2")
    assert quote_entry.metadata == {
        "type": "quote",
        "interviewId": "int-002",
        "quoteId": "q2",
        "tags": ["support", "growth"],
    }


def test_document_without_embedding_stays_searchable():
    interview = EnrichedInterview.model_validate(
        {
            "interviewId": "bare",
            "analysis": {
                "themes": [{"themeId": "t1", "title": "Housing", "description": "Dorm shortage"}],
            },
            "categoryEmbeddings": {},
            "tagEmbeddings": {},
        }
    )

    search_index = build_search_index([interview])

    assert [d.id for d in search_index.documents] == ["interview_bare", "theme_bare_t1"]
    assert search_index.embeddings == []
    hits = search_index.index.search("housing")
    assert [h["ref"] for h in hits] == ["theme_bare_t1"]


def test_full_text_index_searches_content_and_tags(enriched_interviews):
    search_index = build_search_index(enriched_interviews)

    assert [h["ref"] for h in search_index.index.search("marine")] == ["interview_int-001"]
    support_refs = {h["ref"] for h in search_index.index.search("tags:support")}
    assert support_refs == {"quote_int-002_q1", "quote_int-002_q2"}


def test_empty_corpus_builds_empty_index():
    search_index = build_search_index([])

    assert search_index.documents == []
    assert search_index.embeddings == []
    assert search_index.index is None
    assert search_index.to_json()["index"] is None


def test_serialized_index_loads_back(enriched_interviews, tmp_path):
    search_index = build_search_index(enriched_interviews)
    path = tmp_path / "search-index.json"
    path.write_text(json.dumps(search_index.to_json()), encoding="utf-8")

    restored = load_search_index(path)

    assert [d.id for d in restored.documents] == [d.id for d in search_index.documents]
    assert len(restored.embeddings) == len(search_index.embeddings)
    assert [h["ref"] for h in restored.index.search("marine")] == ["interview_int-001"]


def test_serialized_shape(enriched_interviews):
    data = build_search_index(enriched_interviews).to_json()

    assert set(data) == {"index", "documents", "embeddings"}
    assert set(data["index"]["fields"]) == {
        "title", "content", "demographics", "category", "sentiment", "tags"
    }
    quote_doc = next(d for d in data["documents"] if d["type"] == "quote")
    assert "interviewId" in quote_doc
    assert "embedding" not in quote_doc
