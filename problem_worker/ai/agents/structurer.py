"""Structuring stage: derive an exam blueprint from the submitted input."""

from __future__ import annotations

from problem_worker.ai.agents.base import BaseAgent, StageResult
from problem_worker.ai.contracts import ProblemStructure
from problem_worker.ai.agents.prompts import render_structure_prompt
from problem_worker.ai.providers.base import ContentPart
from problem_worker.jobs.models import JobInput


class StructureExtractorAgent(BaseAgent[JobInput, ProblemStructure]):
  """Turn raw text or a document into a ProblemStructure."""

  name = "StructureExtractor"
  endpoint = "structuring"
  output_model = ProblemStructure
  purpose = "structure extraction"

  async def run(self, input_data: JobInput) -> StageResult[ProblemStructure]:
    """Send the instructions followed by the raw input and parse the structure."""
    parts = [ContentPart.from_text(render_structure_prompt())]
    if input_data.is_text:
      parts.append(ContentPart.from_text(input_data.text or ""))
    else:
      parts.append(ContentPart.from_bytes(input_data.data or b"", input_data.mime_type))

    return await self._generate(parts)
