"""Print the poller view of a problem job."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from problem_worker.core.database import dispose_engine
from problem_worker.storage.postgres_problems_repo import PostgresProblemsRepository


async def _run(problem_id: int, verbose: bool) -> int:
  try:
    repo = PostgresProblemsRepository()
    view = await repo.get_status_view(problem_id)
    if view is None:
      print(f"Problem {problem_id} not found.")
      return 1

    print(f"Problem Status: {view.status}")
    if view.error:
      print(f"Error: {view.error}")
    if view.generated_output is not None:
      questions = view.generated_output.get("questions", [])
      print(f"Questions: {len(questions)}")
      if verbose:
        print(json.dumps(view.generated_output, indent=2, ensure_ascii=False))

    record = await repo.get_job(problem_id)
    if record is not None:
      usage = record.token_usage
      print(f"Tokens: structure {usage.structure_prompt_tokens}/{usage.structure_candidates_tokens}, generation {usage.generation_prompt_tokens}/{usage.generation_candidates_tokens}")
      print(f"Created: {record.created_at}")
    return 0
  finally:
    await dispose_engine()


if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Inspect a problem generation job.")
  parser.add_argument("problem_id", type=int)
  parser.add_argument("-v", "--verbose", action="store_true", help="Print the generated output as JSON.")
  args = parser.parse_args()
  sys.exit(asyncio.run(_run(args.problem_id, args.verbose)))
