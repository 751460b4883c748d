"""Local .env support for worker settings."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

_QUOTES = ('"', "'")


def default_env_path() -> Path:
  """Return the .env path at the repo root."""
  return Path(__file__).resolve().parents[2] / ".env"


def parse_env_lines(lines: Iterable[str]) -> dict[str, str]:
  """Parse `KEY=value` lines; comments, blanks and lines without `=` are ignored.

  An optional `export ` prefix is accepted. Quoted values keep their inner text
  verbatim; unquoted values drop a trailing ` # comment`.
  """
  entries: dict[str, str] = {}
  for raw_line in lines:
    line = raw_line.strip().removeprefix("export ").lstrip()
    if not line or line.startswith("#"):
      continue
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
      continue
    value = value.strip()
    if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
      value = value[1:-1]
    else:
      value = value.split(" #", 1)[0].rstrip()
    entries[key] = value
  return entries


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Copy a .env file into `os.environ` and return the keys that were set.

  Variables already present in the environment are left alone unless
  `override` is true. A missing file is not an error.
  """
  if not path.is_file():
    return []

  applied: list[str] = []
  for key, value in parse_env_lines(path.read_text(encoding="utf-8").splitlines()).items():
    if key in os.environ and not override:
      continue
    os.environ[key] = value
    applied.append(key)
  return applied
