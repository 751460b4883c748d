from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Index, Integer, LargeBinary, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from problem_worker.core.database import Base

# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite).
JsonColumn = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


class Problem(Base):
  """One generation job: input, status, intermediate structure, output and token accounting."""

  __tablename__ = "problems"
  __table_args__ = (
    Index("ix_problems_processing_status", "processing_status"),
    CheckConstraint("processing_status IN ('queued', 'processing', 'completed', 'failed')", name="ck_problems_processing_status"),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  raw_input_text: Mapped[str | None] = mapped_column(Text, nullable=True)
  raw_input_file: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
  processing_status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="queued")
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

  exam_title: Mapped[str | None] = mapped_column(Text, nullable=True)
  duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
  is_open_book: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  allowed_materials: Mapped[list | None] = mapped_column(JsonColumn, nullable=True)
  question_format_is_latex: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  answer_format_is_latex: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
  major_sections: Mapped[list | None] = mapped_column(JsonColumn, nullable=True)
  generated_questions: Mapped[dict | None] = mapped_column(JsonColumn, nullable=True)

  structure_prompt_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
  structure_candidates_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
  generation_prompt_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
  generation_candidates_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)

  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
