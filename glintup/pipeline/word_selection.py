"""
Word selection: pick N words a subscriber has not seen in their category and
subcategory (level).

Selection order, each step only running while fewer than N words are held:
1. Inventory: existing vocabulary rows for the category and subcategory,
   oldest first,
   minus the subscriber's history
2. Generation: the LLM generator, given the exclusion list; new entries are
   persisted best-effort
3. Fallback: the static pool minus exclusions, then a reshuffle of the full
   pool with fresh synthetic references if it is still short

Every selected word is written to word history before returning, whether
or not it is ever delivered.
"""

import random
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from glintup.core.datetime_utils import utc_now
from glintup.core.errors import ContentUnavailableError
from glintup.core.logging import get_logger
from glintup.models.subscriber import Subscriber
from glintup.models.vocabulary import VocabularyWord, WordHistoryEntry, WordSource
from glintup.pipeline.fallback_words import FallbackWord, fallback_ref, pool_for
from glintup.pipeline.generator import WordGenerator
from glintup.schemas.llm import GeneratedWord

logger = get_logger(__name__)

# Weakest source wins when reporting a mixed selection
_SOURCE_RANK = {WordSource.DATABASE: 0, WordSource.GENERATED: 1, WordSource.FALLBACK: 2}


@dataclass
class SelectedWord:
    word_ref: str
    word: str
    definition: str
    example: str
    category: str
    source: WordSource
    part_of_speech: str | None = None
    pronunciation: str | None = None
    memory_hook: str | None = None

    def to_payload(self) -> dict[str, Any]:
        data = asdict(self)
        data["source"] = self.source.value
        return data


@dataclass
class SelectionResult:
    words: list[SelectedWord] = field(default_factory=list)
    history: list[WordHistoryEntry] = field(default_factory=list)

    @property
    def source(self) -> WordSource:
        if not self.words:
            return WordSource.DATABASE
        return max((w.source for w in self.words), key=_SOURCE_RANK.__getitem__)


def _from_vocabulary(row: VocabularyWord, source: WordSource) -> SelectedWord:
    return SelectedWord(
        word_ref=str(row.id),
        word=row.word,
        definition=row.definition,
        example=row.example,
        category=row.category,
        source=source,
        part_of_speech=row.part_of_speech,
        pronunciation=row.pronunciation,
        memory_hook=row.memory_hook,
    )


def _from_fallback(entry: FallbackWord, category: str, ref: str) -> SelectedWord:
    return SelectedWord(
        word_ref=ref,
        word=entry.word,
        definition=entry.definition,
        example=entry.example,
        category=category,
        source=WordSource.FALLBACK,
        part_of_speech=entry.part_of_speech,
        memory_hook=entry.memory_hook,
    )


def normalize_level(value: str | None) -> str | None:
    """Lowercased subcategory, or None when unset or blank."""
    value = (value or "").strip().lower()
    return value or None


async def get_history_words(
    db: AsyncSession,
    subscriber_id: uuid.UUID,
    category: str,
    subcategory: str | None = None,
) -> set[str]:
    """Lowercased headwords already selected for a subscriber in a category and level."""
    result = await db.execute(
        select(func.lower(WordHistoryEntry.word)).where(
            WordHistoryEntry.subscriber_id == subscriber_id,
            WordHistoryEntry.category == category,
            WordHistoryEntry.subcategory.is_not_distinct_from(subcategory),
        )
    )
    return set(result.scalars().all())


class WordSelector:
    """Selects and records a subscriber's words for one day."""

    def __init__(
        self,
        generator: WordGenerator | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.generator = generator
        self.rng = rng or random.Random()

    async def _inventory(
        self,
        db: AsyncSession,
        category: str,
        subcategory: str | None,
        excluded: set[str],
        count: int,
    ) -> list[SelectedWord]:
        query = (
            select(VocabularyWord)
            .where(
                VocabularyWord.category == category,
                VocabularyWord.subcategory.is_not_distinct_from(subcategory),
            )
            .order_by(VocabularyWord.created_at, VocabularyWord.id)
        )
        if excluded:
            query = query.where(func.lower(VocabularyWord.word).not_in(excluded))
        result = await db.execute(query.limit(count))
        return [_from_vocabulary(row, WordSource.DATABASE) for row in result.scalars().all()]

    async def _persist_generated(
        self, db: AsyncSession, entry: GeneratedWord, category: str, subcategory: str | None
    ) -> SelectedWord:
        row = VocabularyWord(
            word=entry.word,
            definition=entry.definition,
            example=entry.example,
            category=category,
            subcategory=subcategory,
            part_of_speech=entry.part_of_speech,
            pronunciation=entry.pronunciation,
            memory_hook=entry.memory_hook,
            created_at=utc_now(),
        )
        try:
            async with db.begin_nested():
                db.add(row)
                await db.flush()
            return _from_vocabulary(row, WordSource.GENERATED)
        except SQLAlchemyError as e:
            logger.bind(word=entry.word, category=category, error=str(e)).warning(
                "generated_word_persist_failed"
            )
            return SelectedWord(
                word_ref=f"generated:{uuid.uuid4()}",
                word=entry.word,
                definition=entry.definition,
                example=entry.example,
                category=category,
                source=WordSource.GENERATED,
                part_of_speech=entry.part_of_speech,
                pronunciation=entry.pronunciation,
                memory_hook=entry.memory_hook,
            )

    async def _generated(
        self,
        db: AsyncSession,
        category: str,
        subcategory: str | None,
        excluded: set[str],
        count: int,
        subscriber_id: uuid.UUID,
    ) -> list[SelectedWord]:
        if self.generator is None:
            return []
        try:
            entries = await self.generator.generate_words(
                category, count, sorted(excluded), subcategory
            )
        except Exception as e:
            logger.bind(
                subscriber_id=str(subscriber_id), category=category, error=str(e)
            ).warning("generation_unavailable_using_fallback")
            return []

        words: list[SelectedWord] = []
        for entry in entries:
            key = entry.word.lower()
            if key in excluded:
                continue
            excluded.add(key)
            words.append(await self._persist_generated(db, entry, category, subcategory))
            if len(words) == count:
                break
        return words

    def _fallback(self, category: str, excluded: set[str], count: int) -> list[SelectedWord]:
        pool = list(pool_for(category))

        fresh = [w for w in pool if w.word.lower() not in excluded]
        self.rng.shuffle(fresh)
        words = [_from_fallback(w, category, fallback_ref(category, w.word)) for w in fresh[:count]]
        excluded.update(w.word.lower() for w in words)

        if len(words) < count:
            # Pool exhausted for this subscriber: reshuffle everything and tag
            # each repeat with a fresh reference so history stays distinct.
            taken = {w.word.lower() for w in words}
            replenish = [w for w in pool if w.word.lower() not in taken]
            self.rng.shuffle(replenish)
            repeats = replenish[: count - len(words)]
            for entry in repeats:
                ref = f"fallback:{category}:{entry.word.lower()}:{uuid.uuid4().hex[:8]}"
                words.append(_from_fallback(entry, category, ref))
            logger.bind(category=category, repeats=len(repeats)).info("fallback_pool_replenished")
        return words

    async def select_words(
        self,
        db: AsyncSession,
        subscriber: Subscriber,
        count: int,
        now: datetime | None = None,
    ) -> SelectionResult:
        """
        Select exactly `count` words and record them in word history.

        The caller owns the transaction; history rows are flushed, not
        committed.

        Raises:
            ContentUnavailableError: If every source together falls short
        """
        category = (subscriber.category or "general").strip().lower()
        subcategory = normalize_level(subscriber.subcategory)
        excluded = await get_history_words(db, subscriber.id, category, subcategory)

        words = await self._inventory(db, category, subcategory, excluded, count)
        excluded.update(w.word.lower() for w in words)

        if len(words) < count:
            words += await self._generated(
                db, category, subcategory, excluded, count - len(words), subscriber.id
            )

        if len(words) < count:
            words += self._fallback(category, excluded, count - len(words))

        if len(words) < count:
            raise ContentUnavailableError(
                f"only {len(words)} of {count} words available for category {category}"
            )

        sent_at = now or utc_now()
        history = [
            WordHistoryEntry(
                subscriber_id=subscriber.id,
                word_ref=w.word_ref,
                word=w.word,
                category=category,
                subcategory=subcategory,
                source=w.source,
                sent_at=sent_at,
            )
            for w in words
        ]
        db.add_all(history)
        await db.flush()

        result = SelectionResult(words=words, history=history)
        logger.bind(
            subscriber_id=str(subscriber.id),
            category=category,
            subcategory=subcategory,
            count=count,
            source=result.source.value,
        ).info("words_selected")
        return result
