"""Prompt helpers shared by the pipeline stages."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

STRUCTURE_PROMPT = "structure_extraction.md"
GENERATION_PROMPT = "problem_generation.md"


def _replace_placeholders(template: str, values: dict[str, str]) -> str:
  """Substitute {{PLACEHOLDER}} markers with their values."""
  rendered = template
  for key, value in values.items():
    rendered = rendered.replace(f"{{{{{key}}}}}", value)

  return rendered


def render_structure_prompt() -> str:
  """Instructions sent ahead of the raw input for the structuring stage."""
  return _load_prompt(STRUCTURE_PROMPT)


def render_generation_prompt(structure_json: str) -> str:
  """Instructions for the generation stage with the structure document embedded."""
  return _replace_placeholders(_load_prompt(GENERATION_PROMPT), {"STRUCTURE_JSON": structure_json})


@lru_cache(maxsize=8)
def _load_prompt(name: str) -> str:
  try:
    path = Path(__file__).parents[1] / "prompts" / name
    return path.read_text(encoding="utf-8").strip()
  except (FileNotFoundError, PermissionError, UnicodeDecodeError) as exc:
    raise RuntimeError(f"Failed to load prompt '{name}': {exc}") from exc
