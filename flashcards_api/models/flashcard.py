import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flashcards_api.database import Base


class FlashcardSource(str, enum.Enum):
    manual = "manual"
    ai_full = "ai_full"
    ai_edited = "ai_edited"


class Flashcard(Base):
    __tablename__ = "flashcards"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    generation_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("generations.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Sized for raw AI output; user-submitted text is validated tighter.
    front: Mapped[str] = mapped_column(String(1000), nullable=False)
    back: Mapped[str] = mapped_column(String(2000), nullable=False)
    source: Mapped[FlashcardSource] = mapped_column(
        Enum(FlashcardSource, name="flashcard_source_enum"),
        nullable=False,
        default=FlashcardSource.manual,
    )
    # Proposals belong to their generation until the user accepts them
    is_proposal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="flashcards")
    generation: Mapped["Generation | None"] = relationship(
        "Generation", back_populates="flashcards"
    )

    __table_args__ = (
        Index("ix_flashcards_user_created", "user_id", "created_at"),
        Index("ix_flashcards_generation_id", "generation_id"),
    )
