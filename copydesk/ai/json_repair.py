"""Best-effort recovery of structured data from raw model text."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)
_BOM = "\ufeff"
_STRING_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}

Schema = type[BaseModel] | None


@dataclass(frozen=True)
class RepairResult:
  """Outcome of a repair attempt; `strategy` names the transform that worked."""

  success: bool
  data: Any = None
  error: str | None = None
  strategy: str | None = None


def repair_json(text: str, schema: Schema = None) -> RepairResult:
  """Parse model output, falling back through extraction and cleanup strategies."""
  strategies: list[tuple[str, Callable[[str], str | None]]] = [
    ("as-is", lambda raw: raw),
    ("extract-markdown", extract_json_payload),
    ("fix-common-issues", fix_common_issues),
    ("extract-and-fix", _extract_and_fix),
  ]
  errors: list[str] = []

  for name, transform in strategies:
    candidate = transform(text)
    if candidate is None:
      errors.append(f"{name}: no JSON payload found")
      continue
    try:
      data = _parse_and_validate(candidate, schema)
    except (json.JSONDecodeError, ValidationError) as exc:
      errors.append(f"{name}: {_summarize_error(exc)}")
      continue
    if name != "as-is":
      logger.debug("JSON recovered using strategy=%s", name)
    return RepairResult(success=True, data=data, strategy=name)

  # Surface every strategy failure so prompt tuning has something to work with.
  logger.debug("JSON repair failed preview=%r", text[:200])
  for entry in errors:
    logger.debug("JSON repair strategy error %s", entry)
  logger.debug("JSON repair failed tail=%r", text[-500:])
  return RepairResult(success=False, error=f"All JSON repair strategies failed: {'; '.join(errors)}")


def validate_json(text: str, schema: Schema = None) -> RepairResult:
  """Strictly parse text as JSON without extraction or fixes."""
  try:
    data = _parse_and_validate(text, schema)
  except (json.JSONDecodeError, ValidationError) as exc:
    return RepairResult(success=False, error=_summarize_error(exc), strategy="direct-parse")
  return RepairResult(success=True, data=data, strategy="direct-parse")


def extract_json_payload(raw: str) -> str | None:
  """Return the fenced block contents, or the first balanced object/array span."""
  match = _FENCE_RE.search(raw)
  if match:
    fenced = match.group(1).strip()
    if fenced:
      return fenced
  return _extract_json_block(raw)


def fix_common_issues(raw: str) -> str:
  """Strip a BOM, drop trailing commas and escape raw control characters inside strings."""
  text = raw.lstrip(_BOM).strip()
  output: list[str] = []
  in_string = False
  escape = False
  index = 0

  while index < len(text):
    char = text[index]

    if in_string:
      if escape:
        output.append(char)
        escape = False
      elif char == "\\":
        output.append(char)
        escape = True
      elif char == '"':
        output.append(char)
        in_string = False
      else:
        # Raw newlines are only invalid inside string literals.
        output.append(_STRING_ESCAPES.get(char, char))
      index += 1
      continue

    if char == '"':
      in_string = True
      output.append(char)
      index += 1
      continue

    if char == ",":
      lookahead = index + 1
      while lookahead < len(text) and text[lookahead].isspace():
        lookahead += 1
      # Drop commas that directly precede a closing bracket.
      if lookahead < len(text) and text[lookahead] in "}]":
        index += 1
        continue

    output.append(char)
    index += 1

  return "".join(output)


def _extract_and_fix(raw: str) -> str | None:
  candidate = extract_json_payload(raw.lstrip(_BOM))
  if candidate is None:
    return None
  return fix_common_issues(candidate)


def _parse_and_validate(candidate: str, schema: Schema) -> Any:
  data = json.loads(candidate)
  if schema is None:
    return data
  return schema.model_validate(data)


def _summarize_error(exc: Exception) -> str:
  if isinstance(exc, ValidationError):
    return f"schema validation failed ({exc.error_count()} errors): {exc.errors()[0].get('msg', '')}"
  return str(exc)


def _extract_json_block(raw: str) -> str | None:
  """Locate the first balanced JSON object/array for recovery parsing."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  # Scan the text for a balanced JSON payload while honoring string escapes.
  for index, char in enumerate(raw):
    if start_index is None:
      if char in "{[":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
      continue

    if char in "{[":
      depth += 1
      continue

    if char in "}]":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None
