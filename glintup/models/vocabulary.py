"""Vocabulary inventory and per-subscriber word history."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from glintup.models.base import Base, TimestampMixin


class WordSource(str, enum.Enum):
    """Where a selected word came from."""

    DATABASE = "database"
    GENERATED = "generated"
    FALLBACK = "fallback"


class VocabularyWord(Base, TimestampMixin):
    """A lexical entry shared by every subscriber of its category.

    Rows are append-only from the delivery side: once a word has been
    handed to a subscriber its content is never edited.
    """

    __tablename__ = "vocabulary_words"
    __table_args__ = (UniqueConstraint("word", "category", name="uq_vocabulary_word_category"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    word: Mapped[str] = mapped_column(String(100))
    definition: Mapped[str] = mapped_column(Text)
    example: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(50), index=True)
    subcategory: Mapped[str | None] = mapped_column(String(50), default=None)
    part_of_speech: Mapped[str | None] = mapped_column(String(30), default=None)
    pronunciation: Mapped[str | None] = mapped_column(String(100), default=None)
    memory_hook: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<VocabularyWord {self.word} ({self.category})>"


class WordHistoryEntry(Base):
    """Records that a word was selected for a subscriber.

    Written at selection time, before any send is attempted, and used as
    the exclusion set for future selections in the same category and
    subcategory.
    """

    __tablename__ = "word_history"
    __table_args__ = (Index("ix_word_history_subscriber_category", "subscriber_id", "category"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subscriber_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subscribers.id", ondelete="CASCADE")
    )
    # Vocabulary row id, or a synthetic "fallback:..." / "generated:..." reference
    word_ref: Mapped[str] = mapped_column(String(120))
    word: Mapped[str] = mapped_column(String(100))
    category: Mapped[str] = mapped_column(String(50))
    subcategory: Mapped[str | None] = mapped_column(String(50), default=None)
    source: Mapped[WordSource] = mapped_column(
        Enum(
            WordSource,
            values_callable=lambda e: [x.value for x in e],
            name="wordsource",
            create_type=False,
        )
    )
    sent_at: Mapped[datetime] = mapped_column()

    def __repr__(self) -> str:
        return f"<WordHistoryEntry {self.subscriber_id} {self.word}>"
