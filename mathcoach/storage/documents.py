"""Firestore REST typed-value encoding for session documents.

Field names match the documents already stored by earlier clients:
``score``, ``timestamp``, ``userId`` and ``problems`` (each a map of
``question``, ``answer`` and ``latency``).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from mathcoach.tracking.types import Problem


@dataclass(frozen=True, slots=True)
class StoredProblem:
    question: str
    answer: str
    latency_ms: int


@dataclass(frozen=True, slots=True)
class StoredSession:
    document_name: str
    user_id: str
    score: int
    timestamp: datetime | None
    problems: tuple[StoredProblem, ...]


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def encode_session_document(
    *,
    score: int,
    timestamp: datetime,
    user_id: str,
    problems: Iterable[Problem],
) -> dict[str, Any]:
    return {
        "fields": {
            "score": {"integerValue": str(score)},
            "timestamp": {"timestampValue": _format_timestamp(timestamp)},
            "userId": {"stringValue": user_id},
            "problems": {
                "arrayValue": {
                    "values": [
                        {
                            "mapValue": {
                                "fields": {
                                    "question": {"stringValue": problem.question},
                                    "answer": {"stringValue": problem.answer or ""},
                                    "latency": {"integerValue": str(problem.latency_ms)},
                                }
                            }
                        }
                        for problem in problems
                    ]
                }
            },
        }
    }


def _typed(fields: dict[str, Any], name: str, kind: str) -> Any:
    value = fields.get(name)
    if not isinstance(value, dict):
        return None
    return value.get(kind)


def _string_field(fields: dict[str, Any], name: str) -> str:
    value = _typed(fields, name, "stringValue")
    return value if isinstance(value, str) else ""


def _int_field(fields: dict[str, Any], name: str) -> int:
    value = _typed(fields, name, "integerValue")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def _timestamp_field(fields: dict[str, Any], name: str) -> datetime | None:
    value = _typed(fields, name, "timestampValue")
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


def _decode_problem(raw: object) -> StoredProblem | None:
    if not isinstance(raw, dict):
        return None
    fields = _typed(raw, "mapValue", "fields")
    if not isinstance(fields, dict):
        return None
    return StoredProblem(
        question=_string_field(fields, "question"),
        answer=_string_field(fields, "answer"),
        latency_ms=_int_field(fields, "latency"),
    )


def decode_session_document(document: object) -> StoredSession | None:
    if not isinstance(document, dict):
        return None
    fields = document.get("fields")
    if not isinstance(fields, dict):
        fields = {}

    raw_problems = _typed(fields, "problems", "arrayValue")
    values = raw_problems.get("values") if isinstance(raw_problems, dict) else None
    problems: list[StoredProblem] = []
    for raw_problem in values if isinstance(values, list) else []:
        problem = _decode_problem(raw_problem)
        if problem is not None:
            problems.append(problem)

    name = document.get("name")
    return StoredSession(
        document_name=name if isinstance(name, str) else "",
        user_id=_string_field(fields, "userId"),
        score=_int_field(fields, "score"),
        timestamp=_timestamp_field(fields, "timestamp"),
        problems=tuple(problems),
    )
