"""create users, generations, flashcards and generation error logs"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "e1f2a3b4c5d6"
down_revision = None
branch_labels = None
depends_on = None

generation_status = postgresql.ENUM(
    "pending", "completed", "failed", name="generation_status_enum", create_type=False,
)
flashcard_source = postgresql.ENUM(
    "manual", "ai_full", "ai_edited", name="flashcard_source_enum", create_type=False,
)


def upgrade() -> None:
    generation_status.create(op.get_bind(), checkfirst=True)
    flashcard_source.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "generations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source_text", sa.Text(), nullable=False),
        sa.Column("source_text_length", sa.Integer(), nullable=False),
        sa.Column("status", generation_status, nullable=False, server_default="pending"),
        sa.Column("model", sa.String(255), nullable=False, server_default="pending"),
        sa.Column("generated_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("accepted_unedited_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("accepted_edited_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_generations_user_created", "generations", ["user_id", "created_at"])

    op.create_table(
        "flashcards",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "generation_id", sa.Uuid(),
            sa.ForeignKey("generations.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("front", sa.String(1000), nullable=False),
        sa.Column("back", sa.String(2000), nullable=False),
        sa.Column("source", flashcard_source, nullable=False, server_default="manual"),
        sa.Column("is_proposal", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_flashcards_user_created", "flashcards", ["user_id", "created_at"])
    op.create_index("ix_flashcards_generation_id", "flashcards", ["generation_id"])

    op.create_table(
        "generation_error_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "generation_id", sa.Uuid(),
            sa.ForeignKey("generations.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("error_code", sa.String(64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_generation_error_logs_generation_id", "generation_error_logs", ["generation_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_generation_error_logs_generation_id", table_name="generation_error_logs")
    op.drop_table("generation_error_logs")
    op.drop_index("ix_flashcards_generation_id", table_name="flashcards")
    op.drop_index("ix_flashcards_user_created", table_name="flashcards")
    op.drop_table("flashcards")
    op.drop_index("ix_generations_user_created", table_name="generations")
    op.drop_table("generations")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    flashcard_source.drop(op.get_bind(), checkfirst=True)
    generation_status.drop(op.get_bind(), checkfirst=True)
