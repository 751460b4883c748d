"""Shared data contracts for the two-stage generation pipeline."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _ModelPayload(BaseModel):
  """Base for payloads parsed from model output.

  Models routinely emit `null` for fields they have nothing to say about and
  bare numbers for index labels, so nulls fall back to field defaults and
  numbers are accepted where text is expected.
  """

  model_config = ConfigDict(coerce_numbers_to_str=True)

  @model_validator(mode="before")
  @classmethod
  def _drop_nulls(cls, data: Any) -> Any:
    if isinstance(data, dict):
      return {key: value for key, value in data.items() if value is not None}
    return data


class ExamMeta(_ModelPayload):
  """Exam-level settings recovered by the structuring stage."""

  exam_title: str = ""
  exam_duration: int | None = Field(default=None, ge=0)
  open_book: bool = False
  allowed_materials: list[str] | None = None
  question_format_is_latex: bool = False
  answer_format_is_latex: bool = False


class SubQuestion(_ModelPayload):
  """One sub-question slot inside a major section."""

  question_index: str = ""
  topic: str = ""
  keywords: list[str] = Field(default_factory=list)
  difficulty: str = ""


class MajorSection(_ModelPayload):
  """A major section with its ordered sub-questions."""

  section_index: str = ""
  section_title: str = ""
  sub_questions: list[SubQuestion] = Field(default_factory=list)


class StructureSection(_ModelPayload):
  major_sections: list[MajorSection] = Field(default_factory=list)


class ProblemStructure(_ModelPayload):
  """Normalized problem-structure document produced by the structuring stage."""

  exam_meta: ExamMeta
  structure: StructureSection = Field(default_factory=StructureSection)


class GeneratedExamMeta(_ModelPayload):
  exam_title: str = ""
  open_book: bool = False
  question_format_is_latex: bool = False
  answer_format_is_latex: bool = False


class GeneratedQuestion(_ModelPayload):
  """A generated question with its answer."""

  question_index: str = ""
  topic: str = ""
  keywords: list[str] = Field(default_factory=list)
  difficulty: str = ""
  question_text: str
  answer_text: str


class GeneratedData(_ModelPayload):
  """Final question/answer set produced by the generation stage."""

  exam_meta: GeneratedExamMeta
  questions: list[GeneratedQuestion] = Field(default_factory=list)
