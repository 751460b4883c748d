from __future__ import annotations

import pytest
from pydantic import ValidationError

from problem_worker.ai.agents.generator import format_structure
from problem_worker.ai.contracts import GeneratedData, ProblemStructure
from problem_worker.ai.agents.prompts import render_generation_prompt, render_structure_prompt
from problem_worker.jobs.models import JobInput, JobStatusView, ProblemRecord, TokenUsage


def test_structure_tolerates_nulls_and_numeric_indexes() -> None:
  payload = '{"exam_meta": {"exam_title": null, "exam_duration": 90, "open_book": true, "allowed_materials": null}, "structure": {"major_sections": [{"section_index": 1, "section_title": null, "sub_questions": [{"question_index": 2, "keywords": null}]}]}}'

  structure = ProblemStructure.model_validate_json(payload)

  assert structure.exam_meta.exam_title == ""
  assert structure.exam_meta.exam_duration == 90
  assert structure.exam_meta.allowed_materials is None
  section = structure.structure.major_sections[0]
  assert section.section_index == "1"
  assert section.sub_questions[0].question_index == "2"
  assert section.sub_questions[0].keywords == []


def test_structure_requires_exam_meta() -> None:
  with pytest.raises(ValidationError):
    ProblemStructure.model_validate_json('{"structure": {"major_sections": []}}')


def test_generated_question_requires_texts() -> None:
  with pytest.raises(ValidationError):
    GeneratedData.model_validate_json('{"exam_meta": {}, "questions": [{"question_text": "Q"}]}')


def test_generation_prompt_embeds_indented_structure() -> None:
  structure = ProblemStructure.model_validate_json('{"exam_meta": {"exam_title": "物理"}, "structure": {"major_sections": []}}')

  rendered = format_structure(structure)
  prompt = render_generation_prompt(rendered)

  assert '\n  "exam_meta": {' in rendered
  assert "物理" in rendered
  assert prompt.endswith(rendered)
  assert '"questions"' in prompt
  assert '"major_sections"' in render_structure_prompt()


def test_job_input_requires_exactly_one_source() -> None:
  assert JobInput(text="hi").is_text
  assert JobInput(data=b"%PDF").mime_type == "application/pdf"
  with pytest.raises(ValueError):
    JobInput()
  with pytest.raises(ValueError):
    JobInput(text="hi", data=b"%PDF")


def test_token_usage_rejects_negative_counts() -> None:
  assert TokenUsage(1, 2, 3, 4).total_tokens == 10
  with pytest.raises(ValueError):
    TokenUsage(structure_prompt_tokens=-1)


@pytest.mark.parametrize("status", ["queued", "processing", "completed", "failed"])
def test_status_view_exposes_output_only_when_completed(status: str) -> None:
  record = ProblemRecord(problem_id=1, status=status, error_message="failed at stage 'x': y" if status == "failed" else "", generated_output={"questions": []})

  view = JobStatusView.from_record(record)

  assert (view.generated_output is not None) == (status == "completed")
  assert (view.error is not None) == (status == "failed")
