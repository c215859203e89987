"""Lenient extraction of structured JSON from model replies."""

from __future__ import annotations

import json
import math
import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from crossdoc.types import Conflict, ConflictPosition

_FENCE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)
_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_object(raw: str) -> dict[str, Any] | None:
    """Return the first JSON object found in `raw`, or None.

    Models wrap JSON in code fences or prose often enough that a strict
    `json.loads` is not sufficient; the greedy brace match covers both.
    """

    text = _FENCE.sub("", raw.strip())
    candidates = [text]
    match = _OBJECT.search(text)
    if match is not None:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
    return None


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ConflictPositionPayload(_Payload):
    document: str = Field(validation_alias=AliasChoices("document", "source_name", "source"))
    position: str


class ConflictPayload(_Payload):
    topic: str
    conflicts: list[ConflictPositionPayload] = Field(default_factory=list)

    def to_conflict(self) -> Conflict:
        return Conflict(
            topic=self.topic,
            positions=[
                ConflictPosition(source_name=item.document, position=item.position)
                for item in self.conflicts
            ],
        )


class SynthesisPayload(_Payload):
    consolidated_answer: str = Field(
        validation_alias=AliasChoices("consolidatedAnswer", "consolidated_answer", "answer")
    )
    confidence: float | None = None
    conflicting_info: list[ConflictPayload] = Field(
        default_factory=list,
        validation_alias=AliasChoices("conflictingInfo", "conflicting_info", "conflicts"),
    )


class ComparisonPayload(_Payload):
    similarity: float = 0.0
    common_themes: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("commonThemes", "common_themes")
    )
    unique_to_doc1: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("uniqueToDoc1", "unique_to_doc1")
    )
    unique_to_doc2: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("uniqueToDoc2", "unique_to_doc2")
    )
    key_differences: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("keyDifferences", "key_differences")
    )


def parse_synthesis(raw: str) -> SynthesisPayload | None:
    data = extract_json_object(raw)
    if data is None:
        return None
    try:
        return SynthesisPayload.model_validate(data)
    except ValidationError:
        return None


def parse_comparison(raw: str) -> ComparisonPayload | None:
    data = extract_json_object(raw)
    if data is None:
        return None
    try:
        return ComparisonPayload.model_validate(data)
    except ValidationError:
        return None


def clamp_unit(value: float, default: float = 0.5) -> float:
    """Clamp `value` into [0, 1]; NaN becomes `default`."""
    if math.isnan(value):
        return default
    return max(0.0, min(1.0, value))
