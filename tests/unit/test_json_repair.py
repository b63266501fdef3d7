"""Unit tests for structured output recovery."""

from __future__ import annotations

from pydantic import BaseModel

from copydesk.ai.json_repair import extract_json_payload, fix_common_issues, repair_json, validate_json


class _Item(BaseModel):
  name: str
  tags: list[str]


def test_repair_json_parses_clean_json_as_is() -> None:
  result = repair_json('{"name": "patio", "tags": ["a"]}', _Item)
  assert result.success
  assert result.strategy == "as-is"
  assert result.data == _Item(name="patio", tags=["a"])


def test_repair_json_recovers_fenced_payload_with_trailing_commas() -> None:
  raw = 'Here you go:\n```json\n{"name": "patio", "tags": ["a", "b",],}\n```\nThanks!'
  result = repair_json(raw, _Item)
  assert result.success
  assert result.strategy == "extract-and-fix"
  assert result.data.tags == ["a", "b"]


def test_repair_json_extracts_object_from_surrounding_prose() -> None:
  result = repair_json('Sure! {"name": "x", "tags": []} Let me know.')
  assert result.success
  assert result.strategy == "extract-markdown"
  assert result.data == {"name": "x", "tags": []}


def test_repair_json_escapes_raw_newlines_inside_strings() -> None:
  result = repair_json('{"name": "line one\nline two", "tags": []}', _Item)
  assert result.success
  assert result.data.name == "line one\nline two"


def test_repair_json_strips_bom() -> None:
  result = repair_json('\ufeff{"name": "bom", "tags": []}', _Item)
  assert result.success
  assert result.data.name == "bom"


def test_repair_json_reports_every_strategy_on_failure() -> None:
  result = repair_json("no json here at all", _Item)
  assert not result.success
  assert result.data is None
  assert "as-is" in result.error
  assert "extract-markdown: no JSON payload found" in result.error


def test_repair_json_fails_when_schema_does_not_match() -> None:
  result = repair_json('{"name": 1}', _Item)
  assert not result.success
  assert "schema validation failed" in result.error


def test_validate_json_never_repairs() -> None:
  assert not validate_json('{"name": "x", "tags": [],}', _Item).success
  assert validate_json('{"name": "x", "tags": []}', _Item).strategy == "direct-parse"


def test_fix_common_issues_keeps_commas_inside_strings() -> None:
  assert fix_common_issues('{"a": "x, }", "b": [1, 2,]}') == '{"a": "x, }", "b": [1, 2]}'


def test_extract_json_payload_honors_braces_in_strings() -> None:
  assert extract_json_payload('prefix {"a": "}"} suffix') == '{"a": "}"}'
  assert extract_json_payload("nothing") is None
