from crossdoc.synthesis.parsing import (
    clamp_unit,
    extract_json_object,
    parse_comparison,
    parse_synthesis,
)


def test_extracts_object_from_code_fence() -> None:
    raw = '```json\n{"similarity": 0.7, "commonThemes": ["budgets"]}\n```'

    assert extract_json_object(raw) == {"similarity": 0.7, "commonThemes": ["budgets"]}


def test_extracts_object_surrounded_by_prose() -> None:
    raw = 'Here is the analysis:\n{"consolidatedAnswer": "Yes", "confidence": 0.9}\nHope it helps.'

    assert extract_json_object(raw) == {"consolidatedAnswer": "Yes", "confidence": 0.9}


def test_non_object_replies_yield_none() -> None:
    assert extract_json_object("no structure here") is None
    assert extract_json_object("[1, 2, 3]") is None
    assert extract_json_object("{broken json") is None


def test_synthesis_payload_accepts_camel_case_and_conflicts() -> None:
    payload = parse_synthesis(
        """
        {
          "consolidatedAnswer": "The launch moved to May.",
          "confidence": 0.8,
          "conflictingInfo": [
            {"topic": "launch date", "conflicts": [
              {"document": "plan.pdf", "position": "April"},
              {"document": "update.pdf", "position": "May"}
            ]}
          ]
        }
        """
    )

    assert payload is not None
    assert payload.consolidated_answer == "The launch moved to May."
    conflict = payload.conflicting_info[0].to_conflict()
    assert conflict.topic == "launch date"
    assert [position.source_name for position in conflict.positions] == ["plan.pdf", "update.pdf"]


def test_synthesis_payload_keeps_missing_confidence_unset() -> None:
    payload = parse_synthesis('{"consolidatedAnswer": "Short answer"}')

    assert payload is not None
    assert payload.confidence is None
    assert payload.conflicting_info == []


def test_synthesis_payload_without_answer_is_rejected() -> None:
    assert parse_synthesis('{"confidence": 0.4}') is None


def test_comparison_payload_accepts_snake_case_and_defaults() -> None:
    payload = parse_comparison('{"similarity": 1.4, "key_differences": ["tone"]}')

    assert payload is not None
    assert payload.key_differences == ["tone"]
    assert payload.common_themes == []
    assert clamp_unit(payload.similarity) == 1.0


def test_comparison_payload_with_wrong_types_is_rejected() -> None:
    assert parse_comparison('{"similarity": "very", "commonThemes": "none"}') is None


def test_clamp_unit_maps_nan_to_default() -> None:
    assert clamp_unit(float("nan")) == 0.5
    assert clamp_unit(float("nan"), default=0.0) == 0.0
    assert clamp_unit(-3.0) == 0.0
    assert clamp_unit(0.25) == 0.25
