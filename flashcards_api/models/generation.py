import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flashcards_api.database import Base


class GenerationStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class Generation(Base):
    __tablename__ = "generations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    source_text: Mapped[str] = mapped_column(Text, nullable=False)
    source_text_length: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[GenerationStatus] = mapped_column(
        Enum(GenerationStatus, name="generation_status_enum"),
        nullable=False,
        default=GenerationStatus.pending,
    )
    model: Mapped[str] = mapped_column(String(255), nullable=False, default="pending")
    generated_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accepted_unedited_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accepted_edited_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="generations")
    flashcards: Mapped[list["Flashcard"]] = relationship(
        "Flashcard", back_populates="generation", passive_deletes=True
    )
    error_logs: Mapped[list["GenerationErrorLog"]] = relationship(
        "GenerationErrorLog",
        back_populates="generation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_generations_user_created", "user_id", "created_at"),
    )


class GenerationErrorLog(Base):
    __tablename__ = "generation_error_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    generation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("generations.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    generation: Mapped["Generation"] = relationship("Generation", back_populates="error_logs")

    __table_args__ = (
        Index("ix_generation_error_logs_generation_id", "generation_id"),
    )
