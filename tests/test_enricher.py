import pytest

from src.interview_pipeline import embeddings
from src.interview_pipeline.enricher import (
    category_texts,
    enrich_record,
    item_embedding_text,
    tag_texts,
)
from src.interview_pipeline.index_config import EMBEDDING_DIMENSION
from src.interview_pipeline.models import EnrichedInterview, InterviewRecord


def load(record_dict):
    return InterviewRecord.model_validate(record_dict)


def all_item_embeddings(interview):
    analysis = interview.analysis
    for section in (
        analysis.summaries,
        analysis.themes,
        analysis.quotes,
        analysis.timeline_points,
        analysis.areas_for_improvement,
    ):
        for item in section:
            yield item.embedding


def test_enrich_populates_every_item_with_fixed_dimension(sample_records):
    enriched = enrich_record(load(sample_records[0]))

    assert isinstance(enriched, EnrichedInterview)
    vectors = list(all_item_embeddings(enriched))
    assert len(vectors) == 2 + 2 + 3 + 1 + 1
    assert all(len(v) == EMBEDDING_DIMENSION for v in vectors)


def test_enrich_does_not_modify_input(sample_records):
    record = load(sample_records[0])

    enrich_record(record)

    assert all(v == [] for v in all_item_embeddings(record))


def test_item_text_rules(sample_records):
    analysis = load(sample_records[0]).analysis

    assert item_embedding_text(analysis.summaries[0]) == analysis.summaries[0].summary_text
    assert item_embedding_text(analysis.themes[0]) == (
        "Mentorship Faculty mentors shaped academic confidence."
    )
    assert item_embedding_text(analysis.quotes[1]) == "The labs took every evening I had."
    assert item_embedding_text(analysis.timeline_points[0]) == "Joined a research lab"
    assert item_embedding_text(analysis.areas_for_improvement[0]) == (
        "Lab scheduling Spread lab sessions across the week."
    )


def test_item_embeddings_match_direct_embedding_of_rule_text(sample_records):
    enriched = enrich_record(load(sample_records[0]))
    theme = enriched.analysis.themes[0]

    assert theme.embedding == embeddings.embed_text(f"{theme.title} {theme.description}")


def test_existing_embeddings_are_kept(sample_records):
    """
    Items that already carry an embedding are not re-embedded.
    """
    existing = [0.0] * (EMBEDDING_DIMENSION - 1) + [1.0]
    sample_records[0]["analysis"]["quotes"][0]["embedding"] = existing

    enriched = enrich_record(load(sample_records[0]))

    assert enriched.analysis.quotes[0].embedding == existing
    assert len(enriched.analysis.quotes[1].embedding) == EMBEDDING_DIMENSION


def test_enrich_is_idempotent(sample_records, monkeypatch):
    """
    A second pass over an enriched record only embeds the aggregates and
    leaves every item embedding identical.
    """
    first = enrich_record(load(sample_records[0]))

    sent = []
    original = embeddings.embed_texts

    def recording_embed_texts(texts, *args, **kwargs):
        sent.extend(texts)
        return original(texts, *args, **kwargs)

    monkeypatch.setattr(embeddings, "embed_texts", recording_embed_texts)
    second = enrich_record(first)

    assert list(all_item_embeddings(second)) == list(all_item_embeddings(first))
    assert second.category_embeddings == first.category_embeddings
    assert second.tag_embeddings == first.tag_embeddings
    item_texts = {item_embedding_text(q) for q in first.analysis.quotes}
    # only aggregate texts went to the model, never single quote texts
    assert not item_texts & set(sent)


def test_category_texts(sample_records):
    texts = category_texts(load(sample_records[0]))

    assert texts["summary"] == (
        "Alex found the transition to college demanding but rewarding. "
        "Alex wants to pursue research in marine ecology."
    )
    assert texts["themes"] == (
        "Mentorship Faculty mentors shaped academic confidence. "
        "Workload Heavy lab workload in the first year."
    )
    assert texts["collegeExperience"] == (
        "Alex found the transition to college demanding but rewarding."
    )
    assert texts["quotes"].startswith("My advisor really pushed me to grow.")


def test_college_experience_matches_academic_case_insensitively(sample_records):
    texts = category_texts(load(sample_records[1]))

    assert texts["collegeExperience"] == "Sam relied on peer tutoring to stay on track."


def test_category_embeddings_empty_when_no_text(sample_records):
    enriched = enrich_record(load(sample_records[2]))

    assert set(enriched.category_embeddings) == {
        "summary", "themes", "collegeExperience", "quotes"
    }
    assert len(enriched.category_embeddings["summary"]) == EMBEDDING_DIMENSION
    assert enriched.category_embeddings["themes"] == []
    assert enriched.category_embeddings["collegeExperience"] == []
    assert enriched.category_embeddings["quotes"] == []
    assert enriched.tag_embeddings == {}


def test_tag_texts_join_quotes_per_tag(sample_records):
    texts = tag_texts(load(sample_records[1]))

    assert list(texts) == ["growth", "support"]
    assert texts["growth"] == "My study group kept me going. Tutors helped me believe in myself."
    assert texts["support"] == texts["growth"]


def test_tag_embeddings_embed_concatenated_quotes(sample_records):
    enriched = enrich_record(load(sample_records[0]))

    expected = embeddings.embed_text(tag_texts(enriched)["growth"])
    assert enriched.tag_embeddings == {"growth": expected}


def test_tag_with_only_blank_quotes_is_omitted():
    record = load(
        {
            "interviewId": "blank-tags",
            "analysis": {
                "quotes": [{"quoteId": "q1", "quoteText": "  ", "tags": ["silence"]}],
            },
        }
    )

    enriched = enrich_record(record)

    assert enriched.tag_embeddings == {}
    assert enriched.analysis.quotes[0].embedding == []


def test_enrich_propagates_embedding_failure(sample_records, monkeypatch):
    def failing_embed_texts(*args, **kwargs):
        raise embeddings.EmbeddingFailure("Simulated model error")

    monkeypatch.setattr(embeddings, "embed_texts", failing_embed_texts)

    with pytest.raises(embeddings.EmbeddingFailure, match="Simulated model error"):
        enrich_record(load(sample_records[0]))


def test_unknown_source_fields_survive_enrichment(sample_records):
    enriched = enrich_record(load(sample_records[0]))
    dumped = enriched.to_json_dict()

    assert dumped["metadata"] == {"createdAt": "2024-03-02", "version": "1.0"}
    assert dumped["analysis"]["themes"][0]["impactScore"] == 8
    assert "categoryEmbeddings" in dumped and "tagEmbeddings" in dumped
