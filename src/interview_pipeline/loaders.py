"""Data Loader Module

Discovers interview JSON files in a data directory and loads each one into
a validated InterviewRecord. Anything that is not a well-formed interview
(unreadable file, malformed JSON, schema mismatch) is reported as a
ValidationFailure so the caller can exclude that file and carry on.
"""

import json
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import ValidationError

from .index_config import EXCLUDED_INPUT_FILES
from .models import InterviewRecord


class ValidationFailure(Exception):
    """An input file could not be parsed or does not match the schema."""

    def __init__(self, file: str, errors: List[str]):
        self.file = file
        self.errors = errors
        super().__init__(f"{file}: {'; '.join(errors)}")


def discover_input_files(
    data_dir: str | Path,
    excluded: Optional[Iterable[str]] = None,
) -> List[Path]:
    """List interview files in `data_dir`, sorted by name.

    Only top-level *.json files are considered; names in `excluded`
    (default: EXCLUDED_INPUT_FILES) are skipped.

    Raises:
        FileNotFoundError: If data_dir does not exist
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        raise FileNotFoundError(f"Data directory not found: {data_dir}")
    skip = set(EXCLUDED_INPUT_FILES if excluded is None else excluded)
    return sorted(
        p for p in data_dir.glob("*.json")
        if p.is_file() and p.name not in skip
    )


def _format_validation_errors(exc: ValidationError) -> List[str]:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{location or '<root>'}: {err.get('msg')}")
    return messages


def load_interview(path: str | Path) -> InterviewRecord:
    """Load and validate one interview record.

    Args:
        path: File path to a JSON file holding a single interview object

    Returns:
        Validated InterviewRecord; absent analysis sections become []

    Raises:
        ValidationFailure: If the file is unreadable, not valid JSON, not a
            JSON object, or fails schema validation
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationFailure(path.name, [f"invalid JSON: {e}"]) from e
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationFailure(path.name, [f"unreadable file: {e}"]) from e

    if not isinstance(data, dict):
        raise ValidationFailure(
            path.name, [f"top-level JSON must be an object, got {type(data).__name__}"]
        )

    try:
        return InterviewRecord.model_validate(data)
    except ValidationError as e:
        raise ValidationFailure(path.name, _format_validation_errors(e)) from e
