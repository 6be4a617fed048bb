import json
import logging
from pathlib import Path

import pytest

from src.interview_pipeline import embeddings
from src.interview_pipeline.enricher import enrich_record
from src.interview_pipeline.models import InterviewRecord


@pytest.fixture(autouse=True)
def fake_embeddings(monkeypatch):
    """
    Never load a real model in tests: force the hash-seeded backend and give
    every test its own, not-yet-loaded model handle.
    """
    monkeypatch.setattr(embeddings, "EMBEDDING_BACKEND", "fake")
    handle = embeddings.EmbeddingModelHandle()
    monkeypatch.setattr(embeddings, "_model_handle", handle)
    return handle


def _quote(quote_id, text, tags, sentiment="positive"):
    return {
        "quoteId": quote_id,
        "quoteText": text,
        "context": f"Context for {quote_id}",
        "timestamp": "00:01:00",
        "tags": tags,
        "sentiment": sentiment,
        "significanceLevel": "high",
        "relatedThemeIds": [],
    }


@pytest.fixture
def sample_records():
    """
    Three hand-crafted interviews:
      - int-001: 2 themes, 3 quotes tagged growth, a college summary
      - int-002: 1 theme, 2 quotes tagged growth + support
      - int-003: summaries only, no themes or quotes
    """
    return [
        {
            "interviewId": "int-001",
            "intervieweeName": "Alex Rivera",
            "interviewDate": "2024-03-01",
            "demographics": {"age": "20", "major": "Biology", "year": "Junior"},
            "analysis": {
                "summaries": [
                    {
                        "category": "College Experience",
                        "title": "Campus life",
                        "summaryText": "Alex found the transition to college demanding but rewarding.",
                    },
                    {
                        "category": "Career",
                        "title": "Goals",
                        "summaryText": "Alex wants to pursue research in marine ecology.",
                    },
                ],
                "themes": [
                    {
                        "themeId": "t1",
                        "title": "Mentorship",
                        "description": "Faculty mentors shaped academic confidence.",
                        "frequency": 3,
                        "impactScore": 8,
                        "actionable": True,
                        "category": "support",
                        "relatedQuoteIds": ["q1"],
                    },
                    {
                        "themeId": "t2",
                        "title": "Workload",
                        "description": "Heavy lab workload in the first year.",
                        "frequency": 2,
                        "impactScore": 6,
                        "actionable": False,
                        "category": "academics",
                        "relatedQuoteIds": ["q2"],
                    },
                ],
                "quotes": [
                    _quote("q1", "My advisor really pushed me to grow.", ["growth"]),
                    _quote("q2", "The labs took every evening I had.", ["growth"], "negative"),
                    _quote("q3", "By junior year I felt like a scientist.", ["growth"]),
                ],
                "timelinePoints": [
                    {
                        "eventDescription": "Joined a research lab",
                        "timeframeType": "sophomore",
                        "category": "academic",
                        "sentiment": "positive",
                    }
                ],
                "areasForImprovement": [
                    {
                        "areaId": "a1",
                        "title": "Lab scheduling",
                        "description": "Spread lab sessions across the week.",
                        "priority": "medium",
                        "stakeholders": ["faculty"],
                        "actionItems": ["Review lab calendar"],
                    }
                ],
            },
            "metadata": {"createdAt": "2024-03-02", "version": "1.0"},
        },
        {
            "interviewId": "int-002",
            "intervieweeName": "Sam Chen",
            "demographics": {"age": "22", "major": "History"},
            "analysis": {
                "summaries": [
                    {
                        "category": "Academic Support",
                        "title": "Tutoring",
                        "summaryText": "Sam relied on peer tutoring to stay on track.",
                    }
                ],
                "themes": [
                    {
                        "themeId": "t1",
                        "title": "Peer support",
                        "description": "Study groups provided motivation.",
                        "category": "support",
                    }
                ],
                "quotes": [
                    _quote("q1", "My study group kept me going.", ["growth", "support"]),
                    _quote("q2", "Tutors helped me believe in myself.", ["support", "growth"]),
                ],
            },
            "metadata": {"createdAt": "2024-03-05"},
        },
        {
            "interviewId": "int-003",
            "demographics": {},
            "analysis": {
                "summaries": [
                    {
                        "category": "Finances",
                        "title": "Work",
                        "summaryText": "Jordan balanced two part-time jobs with classes.",
                    }
                ],
                "themes": [],
                "quotes": [],
            },
            "metadata": {},
        },
    ]


@pytest.fixture
def write_records(tmp_path: Path):
    """Write records (dicts) or raw strings as one JSON file each; return the dir."""
    def _write(records, data_dir_name="examples"):
        data_dir = tmp_path / data_dir_name
        data_dir.mkdir(exist_ok=True)
        for idx, record in enumerate(records, start=1):
            content = record if isinstance(record, str) else json.dumps(record)
            (data_dir / f"interview_{idx:03d}.json").write_text(content, encoding="utf-8")
        return data_dir
    return _write


@pytest.fixture
def enriched_interviews(sample_records):
    """sample_records run through the enricher with the fake backend."""
    return [enrich_record(InterviewRecord.model_validate(r)) for r in sample_records]


@pytest.fixture
def cli_logging(tmp_path, monkeypatch):
    """
    Send the CLI's log file to tmp_path and put the root logger back the way
    it was, since configure_logging() replaces its handlers.
    """
    import src.run_pipeline as run_pipeline_cli

    monkeypatch.setattr(run_pipeline_cli, "LOG_DIR", tmp_path / "logs")
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield tmp_path / "logs"
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
