"""Cheap local relatedness estimate between two documents."""

from __future__ import annotations

from dataclasses import dataclass

from crossdoc.types import DocumentHandle

_TEXT_WEIGHT = 0.7
_META_WEIGHT = 0.3
_TYPE_WEIGHT = 0.3
_WORD_COUNT_WEIGHT = 0.2
_NAME_WEIGHT = 0.3


@dataclass(slots=True, frozen=True)
class DocumentSample:
    """A document handle with the text preview the heuristic may read."""

    handle: DocumentHandle
    text: str


class SimilarityHeuristic:
    """Word-overlap plus metadata similarity, without any model call.

    The score combines a Jaccard index over words longer than three characters
    (weight 0.7) with a metadata score (weight 0.3) built from file type, word
    count ratio and display-name character overlap. Only the first
    `preview_chars` characters of each text are read, so cost does not grow
    with document size.

    Scores are capped at `ceiling` so model-assisted comparisons can signal
    more certainty than this estimate ever does. An empty preview yields
    `unknown_score`, which callers must not read as "unrelated".
    """

    def __init__(
        self,
        *,
        preview_chars: int = 2000,
        ceiling: float = 0.95,
        unknown_score: float = 0.1,
    ) -> None:
        self.preview_chars = preview_chars
        self.ceiling = ceiling
        self.unknown_score = unknown_score

    def estimate(self, a: DocumentSample, b: DocumentSample) -> float:
        text_a = a.text[: self.preview_chars].lower()
        text_b = b.text[: self.preview_chars].lower()
        if not text_a.strip() or not text_b.strip():
            return self.unknown_score

        words_a = {word for word in text_a.split() if len(word) > 3}
        words_b = {word for word in text_b.split() if len(word) > 3}
        word_similarity = _jaccard(words_a, words_b)
        meta_similarity = metadata_similarity(a.handle, b.handle)

        combined = word_similarity * _TEXT_WEIGHT + meta_similarity * _META_WEIGHT
        return max(0.0, min(combined, self.ceiling))


def metadata_similarity(a: DocumentHandle, b: DocumentHandle) -> float:
    """Weighted metadata agreement, renormalized over the inputs present."""

    score = 0.0
    weight = 0.0

    if a.file_type and b.file_type:
        score += _TYPE_WEIGHT if a.file_type.lower() == b.file_type.lower() else 0.0
        weight += _TYPE_WEIGHT

    if a.word_count and b.word_count:
        ratio = min(a.word_count, b.word_count) / max(a.word_count, b.word_count)
        score += ratio * _WORD_COUNT_WEIGHT
        weight += _WORD_COUNT_WEIGHT

    if a.display_name and b.display_name:
        name_similarity = _jaccard(set(a.display_name.lower()), set(b.display_name.lower()))
        score += name_similarity * _NAME_WEIGHT
        weight += _NAME_WEIGHT

    return score / weight if weight > 0 else 0.0


def _jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)
