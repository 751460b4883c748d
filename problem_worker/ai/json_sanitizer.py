"""Repair and validation of raw model text into a parseable JSON payload."""

from __future__ import annotations

import json
import logging
import re

from problem_worker.core.exceptions import ResponseSanitizationError

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"```json(.*)```", re.DOTALL)
# A backslash together with whatever follows it, so valid pairs such as `\\`
# are consumed whole and never re-split.
_ESCAPE_RE = re.compile(r"\\(.?)", re.DOTALL)
_VALID_ESCAPES = frozenset('"\\/bfnrtu')


def is_valid_json(text: str) -> bool:
  """Return True when `text` is exactly one JSON document."""
  try:
    json.loads(text)
  except json.JSONDecodeError:
    return False
  return True


def extract_fenced_json(raw: str) -> str:
  """Return the content of a ```json fenced block, or `raw` when there is none."""
  if "```" not in raw:
    return raw
  match = _JSON_FENCE_RE.search(raw)
  if match is None:
    return raw
  return match.group(1)


def escape_stray_backslashes(text: str) -> str:
  """Double every backslash that does not start a valid JSON escape.

  Models writing LaTeX (`\\frac`, `\\alpha`) into JSON strings often forget to
  escape the backslash; doubling it turns the command into literal text.
  """

  def _replace(match: re.Match[str]) -> str:
    follower = match.group(1)
    if follower and follower in _VALID_ESCAPES:
      return match.group(0)
    return "\\\\" + follower

  return _ESCAPE_RE.sub(_replace, text)


def sanitize_json_response(raw: str) -> str:
  """Turn raw model text into a JSON document string.

  Valid JSON is returned untouched after trimming, even when a string value
  holds a fenced snippet. Otherwise the ```json block is unwrapped and, when
  strict parsing still fails, stray backslashes are escaped and the result is
  parsed again. The function is pure: the same input always produces the same
  output or the same error.

  Raises:
    ResponseSanitizationError: the text is empty or still invalid after repair;
      the error message embeds the text that could not be parsed.
  """
  if not raw:
    raise ResponseSanitizationError("AI response was empty", text="")

  trimmed = raw.strip()
  if is_valid_json(trimmed):
    return trimmed

  trimmed = extract_fenced_json(raw).strip()
  if is_valid_json(trimmed):
    return trimmed

  repaired = escape_stray_backslashes(trimmed)
  if is_valid_json(repaired):
    logger.warning("Model output needed backslash repair before it parsed (%d chars).", len(trimmed))
    return repaired

  raise ResponseSanitizationError(f"failed to parse valid JSON even after sanitization: {repaired}", text=repaired)
