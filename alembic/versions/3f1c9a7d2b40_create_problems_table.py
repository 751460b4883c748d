"""create problems table

Revision ID: 3f1c9a7d2b40
Revises:
Create Date: 2026-10-19 09:12:41.503118

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2b40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "problems",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("raw_input_text", sa.Text(), nullable=True),
    sa.Column("raw_input_file", sa.LargeBinary(), nullable=True),
    sa.Column("processing_status", sa.String(length=16), server_default="queued", nullable=False),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("exam_title", sa.Text(), nullable=True),
    sa.Column("duration_minutes", sa.Integer(), nullable=True),
    sa.Column("is_open_book", sa.Boolean(), nullable=True),
    sa.Column("allowed_materials", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("question_format_is_latex", sa.Boolean(), nullable=True),
    sa.Column("answer_format_is_latex", sa.Boolean(), nullable=True),
    sa.Column("major_sections", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("generated_questions", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("structure_prompt_tokens", sa.Integer(), nullable=True),
    sa.Column("structure_candidates_tokens", sa.Integer(), nullable=True),
    sa.Column("generation_prompt_tokens", sa.Integer(), nullable=True),
    sa.Column("generation_candidates_tokens", sa.Integer(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    # Status values are constrained in the database as well as in code.
    sa.CheckConstraint("processing_status IN ('queued', 'processing', 'completed', 'failed')", name="ck_problems_processing_status"),
  )
  op.create_index("ix_problems_processing_status", "problems", ["processing_status"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_problems_processing_status", table_name="problems")
  op.drop_table("problems")
