"""Tests for word selection across inventory, generation and fallback."""

import random

import pytest
from sqlalchemy import func, select

from glintup.core.errors import ContentGenerationError
from glintup.models.vocabulary import VocabularyWord, WordHistoryEntry, WordSource
from glintup.pipeline.fallback_words import pool_for
from glintup.pipeline.word_selection import WordSelector, get_history_words

pytestmark = pytest.mark.asyncio


class TestInventorySelection:
    """Words already in the vocabulary table."""

    async def test_oldest_unseen_first(self, db_session, subscriber_factory, word_factory):
        """Should pick inventory rows in creation order."""
        subscriber = await subscriber_factory(category="business")
        for w in ("alpha", "bravo", "charlie", "delta"):
            await word_factory(word=w, category="business")

        result = await WordSelector().select_words(db_session, subscriber, 3)

        assert [w.word for w in result.words] == ["alpha", "bravo", "charlie"]
        assert result.source == WordSource.DATABASE

    async def test_excludes_history_case_insensitively(
        self, db_session, subscriber_factory, word_factory, history_factory
    ):
        subscriber = await subscriber_factory(category="business")
        for w in ("alpha", "bravo", "charlie", "delta"):
            await word_factory(word=w, category="business")
        await history_factory(subscriber, ["Alpha", "charlie"])

        result = await WordSelector().select_words(db_session, subscriber, 2)

        assert [w.word for w in result.words] == ["bravo", "delta"]

    async def test_other_category_history_ignored(
        self, db_session, subscriber_factory, word_factory, history_factory
    ):
        """History in another category does not exclude a word."""
        subscriber = await subscriber_factory(category="business")
        await word_factory(word="alpha", category="business")
        await history_factory(subscriber, ["alpha"], category="exam")

        result = await WordSelector().select_words(db_session, subscriber, 1)

        assert result.words[0].word == "alpha"

    async def test_inventory_matches_subcategory(
        self, db_session, subscriber_factory, word_factory
    ):
        """An advanced subscriber never receives a beginner inventory row."""
        subscriber = await subscriber_factory(category="business", subcategory="advanced")
        beginner_row = await word_factory(
            word="synergy", category="business", subcategory="beginner"
        )
        beginner_ref = str(beginner_row.id)

        result = await WordSelector(rng=random.Random(3)).select_words(db_session, subscriber, 1)

        assert result.words[0].source == WordSource.FALLBACK
        assert result.words[0].word_ref != beginner_ref

    async def test_inventory_picks_own_level(self, db_session, subscriber_factory, word_factory):
        subscriber = await subscriber_factory(category="business", subcategory="advanced")
        await word_factory(word="synergy", category="business", subcategory="beginner")
        await word_factory(word="fiduciary", category="business", subcategory="advanced")

        result = await WordSelector().select_words(db_session, subscriber, 1)

        assert result.words[0].word == "fiduciary"
        assert result.words[0].source == WordSource.DATABASE

    async def test_history_separated_by_subcategory(
        self, db_session, subscriber_factory, word_factory, history_factory
    ):
        """History at one level does not exclude the same word at another level."""
        subscriber = await subscriber_factory(category="business", subcategory="advanced")
        await word_factory(word="fiduciary", category="business", subcategory="advanced")
        await history_factory(subscriber, ["fiduciary"], subcategory="beginner")

        result = await WordSelector().select_words(db_session, subscriber, 1)

        assert result.words[0].word == "fiduciary"
        assert await get_history_words(db_session, subscriber.id, "business", "advanced") == {
            "fiduciary"
        }
        assert await get_history_words(db_session, subscriber.id, "business", "beginner") == {
            "fiduciary"
        }
        assert await get_history_words(db_session, subscriber.id, "business") == set()

    async def test_records_history(self, db_session, subscriber_factory, word_factory):
        """Every selected word is written to history before returning."""
        subscriber = await subscriber_factory(category="business")
        await word_factory(word="alpha", category="business")
        await word_factory(word="bravo", category="business")

        await WordSelector().select_words(db_session, subscriber, 2)

        history = await get_history_words(db_session, subscriber.id, "business")
        assert history == {"alpha", "bravo"}


class TestGeneratedSelection:
    """LLM generation after the inventory runs dry."""

    async def test_generation_fills_gap(self, db_session, subscriber_factory, fake_generator):
        subscriber = await subscriber_factory(category="exam")
        generator = fake_generator(["ubiquitous", "leverage", "mellifluous"])

        result = await WordSelector(generator=generator).select_words(db_session, subscriber, 3)

        assert [w.word for w in result.words] == ["ubiquitous", "leverage", "mellifluous"]
        assert all(w.source == WordSource.GENERATED for w in result.words)
        assert generator.calls[0]["count"] == 3

    async def test_generated_words_persisted_to_inventory(
        self, db_session, subscriber_factory, fake_generator
    ):
        subscriber = await subscriber_factory(category="exam")
        generator = fake_generator(["ubiquitous"])

        result = await WordSelector(generator=generator).select_words(db_session, subscriber, 1)

        count = await db_session.scalar(
            select(func.count(VocabularyWord.id)).where(VocabularyWord.word == "ubiquitous")
        )
        assert count == 1
        assert not result.words[0].word_ref.startswith("generated:")

    async def test_generator_receives_exclusions(
        self, db_session, subscriber_factory, history_factory, fake_generator
    ):
        subscriber = await subscriber_factory(category="exam")
        await history_factory(subscriber, ["ephemeral"])
        generator = fake_generator(["pragmatic"])

        await WordSelector(generator=generator).select_words(db_session, subscriber, 1)

        assert generator.calls[0]["excluding"] == ["ephemeral"]

    async def test_generated_repeat_is_dropped(
        self, db_session, subscriber_factory, history_factory, fake_generator
    ):
        """A generated word the subscriber has seen is never selected."""
        subscriber = await subscriber_factory(category="exam")
        await history_factory(subscriber, ["ephemeral"])
        generator = fake_generator(["Ephemeral", "pragmatic"])

        result = await WordSelector(generator=generator).select_words(db_session, subscriber, 2)

        words = [w.word.lower() for w in result.words]
        assert "ephemeral" not in words
        assert "pragmatic" in words
        assert len(words) == 2


class TestFallbackSelection:
    """Static pool when generation is unavailable."""

    async def test_generation_error_falls_back(self, db_session, subscriber_factory, fake_generator):
        subscriber = await subscriber_factory(category="business")
        generator = fake_generator(error=ContentGenerationError("provider down"))

        result = await WordSelector(generator=generator, rng=random.Random(7)).select_words(
            db_session, subscriber, 3
        )

        pool_words = {w.word for w in pool_for("business")}
        assert len(result.words) == 3
        assert {w.word for w in result.words} <= pool_words
        assert result.source == WordSource.FALLBACK

    async def test_fallback_skips_seen_words(self, db_session, subscriber_factory, history_factory):
        subscriber = await subscriber_factory(category="business")
        pool = [w.word for w in pool_for("business")]
        await history_factory(subscriber, pool[:-2], source=WordSource.FALLBACK)

        result = await WordSelector(rng=random.Random(1)).select_words(db_session, subscriber, 2)

        assert {w.word for w in result.words} == set(pool[-2:])

    async def test_exhausted_pool_replenishes_with_fresh_refs(
        self, db_session, subscriber_factory, history_factory
    ):
        """Once every pool word is seen, repeats get distinct references."""
        subscriber = await subscriber_factory(category="slang")
        pool = [w.word for w in pool_for("slang")]
        await history_factory(subscriber, pool, source=WordSource.FALLBACK)

        result = await WordSelector(rng=random.Random(3)).select_words(db_session, subscriber, 3)

        assert len(result.words) == 3
        assert len({w.word for w in result.words}) == 3
        refs = [w.word_ref for w in result.words]
        assert len(set(refs)) == 3
        assert all(ref.startswith("fallback:slang:") for ref in refs)

    async def test_unknown_category_uses_generic_pool(self, db_session, subscriber_factory):
        subscriber = await subscriber_factory(category="Astrophysics")

        result = await WordSelector().select_words(db_session, subscriber, 2)

        generic = {w.word for w in pool_for("general")}
        assert {w.word for w in result.words} <= generic
        assert all(w.category == "astrophysics" for w in result.words)

    async def test_no_duplicate_history_within_a_selection(self, db_session, subscriber_factory):
        subscriber = await subscriber_factory(category="exam")

        await WordSelector().select_words(db_session, subscriber, 5)

        rows = (
            await db_session.execute(
                select(WordHistoryEntry.word).where(WordHistoryEntry.subscriber_id == subscriber.id)
            )
        ).scalars().all()
        assert len(rows) == len(set(rows)) == 5
