"""Generation stage: write questions and answers from a structure document."""

from __future__ import annotations

import json

from problem_worker.ai.agents.base import BaseAgent, StageResult
from problem_worker.ai.contracts import GeneratedData, ProblemStructure
from problem_worker.ai.agents.prompts import render_generation_prompt
from problem_worker.ai.providers.base import ContentPart


def format_structure(structure: ProblemStructure) -> str:
  """Indented JSON of the structure as embedded in the generation prompt."""
  return json.dumps(structure.model_dump(mode="json"), indent=2, ensure_ascii=False)


class ProblemGeneratorAgent(BaseAgent[ProblemStructure, GeneratedData]):
  """Generate the final question set for a structure document."""

  name = "ProblemGenerator"
  endpoint = "generation"
  output_model = GeneratedData
  purpose = "problem generation"

  async def run(self, input_data: ProblemStructure) -> StageResult[GeneratedData]:
    prompt = render_generation_prompt(format_structure(input_data))
    return await self._generate([ContentPart.from_text(prompt)])
