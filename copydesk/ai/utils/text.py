"""Markdown and text helpers shared by the writer, SEO and QA agents."""

from __future__ import annotations

import re

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)
_WORD_RE = re.compile(r"[A-Za-z0-9']+")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_SLUG_DASH_RE = re.compile(r"[\s-]+")
_LINK_RE = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_IMAGE_RE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`([^`]*)`")
_MARKUP_RE = re.compile(r"^\s{0,3}(#{1,6}|>|[-*+]|\d+\.)\s+", re.MULTILINE)
_EMPHASIS_RE = re.compile(r"(\*\*|__|\*|_|~~)")


def extract_headings(content: str) -> list[tuple[int, str]]:
  """Return `(level, text)` for every ATX heading in document order."""
  return [(len(match.group(1)), match.group(2).strip()) for match in HEADING_RE.finditer(content)]


def strip_markdown(content: str) -> str:
  """Reduce markdown to plain prose for counting and readability scoring."""
  text = _CODE_FENCE_RE.sub(" ", content)
  text = _IMAGE_RE.sub(" ", text)
  text = _LINK_RE.sub(r"\1", text)
  text = _INLINE_CODE_RE.sub(r"\1", text)
  text = _MARKUP_RE.sub("", text)
  text = _EMPHASIS_RE.sub("", text)
  return text


def words(text: str) -> list[str]:
  return _WORD_RE.findall(text)


def count_words(content: str) -> int:
  return len(words(strip_markdown(content)))


def slugify(value: str, max_length: int = 80) -> str:
  """Lowercase, dash-separated, URL-safe slug."""
  slug = _SLUG_STRIP_RE.sub("", value.lower())
  slug = _SLUG_DASH_RE.sub("-", slug).strip("-")
  return slug[:max_length].rstrip("-")


def truncate(value: str, limit: int) -> str:
  """Clip to `limit` characters, ending with an ellipsis when clipped."""
  value = value.strip()
  if len(value) <= limit:
    return value
  return value[: limit - 3].rstrip() + "..."


def preview_words(content: str, limit: int) -> str:
  parts = content.split()
  if len(parts) <= limit:
    return content
  return " ".join(parts[:limit]) + " ..."
