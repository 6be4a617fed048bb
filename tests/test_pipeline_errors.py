import json
import logging
import os
from pathlib import Path

import pytest

import src.run_pipeline as run_pipeline
import src.interview_pipeline.embeddings as embeddings
import src.interview_pipeline.pipeline as pipeline_mod


def test_malformed_file_is_excluded_and_batch_completes(tmp_path, write_records, sample_records, caplog):
    """
    One malformed JSON file among valid ones: the other interviews are
    processed, the failure is recorded, and artifacts are still written.
    """
    data_dir = write_records([sample_records[0], '{"interviewId": "broken", ', sample_records[1]])
    output_dir = tmp_path / "output"
    caplog.set_level(logging.ERROR)

    result = pipeline_mod.run_pipeline(data_dir=data_dir, output_dir=output_dir, seed=0)

    assert not result.ok
    assert [i.interview_id for i in result.interviews] == ["int-001", "int-002"]
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.file == "interview_002.json"
    assert failure.stage == "validation"

    metadata = json.loads((output_dir / "metadata.json").read_text(encoding="utf-8"))
    assert metadata["totalInterviews"] == 2
    assert metadata["failedFiles"] == 1

    # entry indices refer to positions among successful interviews
    indices = json.loads((output_dir / "vector-indices.json").read_text(encoding="utf-8"))
    assert [e["index"] for e in indices["quotes"]] == [0, 1]

    messages = "\n".join(rec.getMessage() for rec in caplog.records)
    assert "interview_002.json" in messages

    with pytest.raises(pipeline_mod.PipelineFailure, match="interview_002.json"):
        result.raise_for_failures()


def test_cli_exits_nonzero_when_a_file_fails(tmp_path, write_records, sample_records, capsys, cli_logging):
    data_dir = write_records([sample_records[0], "not json at all"])
    output_dir = tmp_path / "output"

    exit_code = run_pipeline.main(["--data-dir", str(data_dir), "--output-dir", str(output_dir)])

    assert exit_code == 1
    # the good interview still produced artifacts
    metadata = json.loads((output_dir / "metadata.json").read_text(encoding="utf-8"))
    assert metadata["totalInterviews"] == 1
    assert "interview_002.json [validation]" in capsys.readouterr().err


@pytest.mark.parametrize(
    "record",
    [
        {"intervieweeName": "No id", "analysis": {}},
        {"interviewId": "no-analysis"},
        {"interviewId": "bad-quotes", "analysis": {"quotes": "not a list"}},
        ["a", "list"],
    ],
)
def test_schema_mismatch_is_a_validation_failure(tmp_path, write_records, record):
    data_dir = write_records([record])

    result = pipeline_mod.run_pipeline(data_dir=data_dir, output_dir=tmp_path / "out", dry_run=True)

    assert result.interviews == []
    assert [f.stage for f in result.failures] == ["validation"]
    assert result.failures[0].errors


def test_embedding_failure_only_excludes_that_file(tmp_path, write_records, sample_records, monkeypatch):
    """
    The model failing on one record's text excludes that record; the rest of
    the batch is unaffected.
    """
    original = embeddings.embed_texts

    def flaky_embed_texts(texts, *args, **kwargs):
        if any("Sam" in t for t in texts):
            raise embeddings.EmbeddingFailure("Simulated inference failure")
        return original(texts, *args, **kwargs)

    monkeypatch.setattr(embeddings, "embed_texts", flaky_embed_texts)
    data_dir = write_records(sample_records)

    result = pipeline_mod.run_pipeline(data_dir=data_dir, output_dir=tmp_path / "out", seed=0)

    assert [i.interview_id for i in result.interviews] == ["int-001", "int-003"]
    assert len(result.failures) == 1
    assert result.failures[0].stage == "embedding"
    assert "Simulated inference failure" in result.failures[0].reason


def test_missing_data_dir_exits_nonzero(tmp_path, cli_logging):
    missing = tmp_path / "does_not_exist"
    output_dir = tmp_path / "output"

    exit_code = run_pipeline.main(["--data-dir", str(missing), "--output-dir", str(output_dir)])

    assert exit_code != 0
    assert not output_dir.exists()


def test_missing_data_dir_raises_from_library(tmp_path):
    with pytest.raises(FileNotFoundError):
        pipeline_mod.run_pipeline(data_dir=tmp_path / "nope", output_dir=tmp_path / "out")


def test_empty_data_dir_writes_empty_artifacts(tmp_path, cli_logging):
    data_dir = tmp_path / "examples"
    data_dir.mkdir()
    output_dir = tmp_path / "output"

    exit_code = run_pipeline.main(["--data-dir", str(data_dir), "--output-dir", str(output_dir)])

    assert exit_code == 0
    assert json.loads((output_dir / "interviews.json").read_text(encoding="utf-8")) == []
    clusters = json.loads((output_dir / "clusters.json").read_text(encoding="utf-8"))
    assert clusters["summary"] == [] and clusters["tags"] == {}
    search = json.loads((output_dir / "search-index.json").read_text(encoding="utf-8"))
    assert search["documents"] == [] and search["index"] is None


def test_invalid_cluster_count_exits_nonzero(tmp_path, write_records, sample_records, cli_logging):
    data_dir = write_records(sample_records)

    exit_code = run_pipeline.main(
        ["--data-dir", str(data_dir), "--output-dir", str(tmp_path / "out"), "--clusters", "0"]
    )

    assert exit_code == 1
    assert not (tmp_path / "out").exists()


def test_dry_run_writes_nothing(tmp_path, write_records, sample_records):
    data_dir = write_records(sample_records)
    output_dir = tmp_path / "output"

    result = pipeline_mod.run_pipeline(data_dir=data_dir, output_dir=output_dir, dry_run=True)

    assert len(result.interviews) == 3
    assert result.output_paths == {}
    assert not output_dir.exists()


@pytest.mark.skipif(
    not hasattr(os, "geteuid") or os.geteuid() == 0,
    reason="permission bits are not enforced for root",
)
def test_unwritable_output_dir_propagates(tmp_path, write_records, sample_records, caplog):
    data_dir = write_records(sample_records[:1])
    output_dir = tmp_path / "readonly"
    output_dir.mkdir()
    output_dir.chmod(0o500)
    caplog.set_level(logging.ERROR)

    try:
        with pytest.raises(OSError):
            pipeline_mod.run_pipeline(data_dir=data_dir, output_dir=output_dir)
    finally:
        output_dir.chmod(0o700)

    assert "Failed to write artifacts" in caplog.text


def test_output_dir_that_is_a_file_fails_cli(tmp_path, write_records, sample_records, cli_logging):
    data_dir = write_records(sample_records[:1])
    blocker = tmp_path / "output"
    blocker.write_text("I am a file", encoding="utf-8")

    exit_code = run_pipeline.main(["--data-dir", str(data_dir), "--output-dir", str(blocker)])

    assert exit_code == 1
    assert Path(blocker).read_text(encoding="utf-8") == "I am a file"
