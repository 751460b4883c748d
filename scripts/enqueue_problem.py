"""Insert a problem row and publish it to the generation queue.

Stands in for the ingress service when testing a worker locally:

  python scripts/enqueue_problem.py --text "What is 2+2?"
  python scripts/enqueue_problem.py --file exam.pdf
  python scripts/enqueue_problem.py --problem-id 42    # republish an existing row
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure repo root is on sys.path so local imports resolve before site-packages.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from problem_worker.config import get_settings
from problem_worker.core.database import dispose_engine, get_session_factory
from problem_worker.queue.rabbitmq import QueueClient
from problem_worker.schema.problems import Problem


async def _insert_problem(text: str | None, file_path: Path | None) -> int:
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("DATABASE_URL must be set.")
  row = Problem(raw_input_text=text, raw_input_file=file_path.read_bytes() if file_path else None, processing_status="queued")
  async with session_factory() as session:
    session.add(row)
    await session.commit()
    return int(row.id)


async def _run(args: argparse.Namespace) -> None:
  settings = get_settings()
  if not settings.rabbitmq_url:
    raise RuntimeError("RABBITMQ_URL must be set.")

  try:
    problem_id = args.problem_id
    if problem_id is None:
      problem_id = await _insert_problem(args.text, Path(args.file) if args.file else None)
      print(f"Created problem {problem_id}")
  finally:
    await dispose_engine()

  client = QueueClient(settings.rabbitmq_url, settings.queue_name)
  await client.connect()
  try:
    await client.publish_job(problem_id)
  finally:
    await client.close()
  print(f"Queued problem {problem_id} on '{settings.queue_name}'")


def main() -> None:
  parser = argparse.ArgumentParser(description="Create and enqueue a problem generation job.")
  source = parser.add_mutually_exclusive_group(required=True)
  source.add_argument("--text", help="Raw problem text.")
  source.add_argument("--file", help="Path to a PDF to submit.")
  source.add_argument("--problem-id", type=int, help="Publish an existing problem id without inserting.")
  asyncio.run(_run(parser.parse_args()))


if __name__ == "__main__":
  main()
