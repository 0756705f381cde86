"""
Match engine: loading, ranking, threshold policy and failure containment.
"""

import asyncio

import pytest
from unittest.mock import MagicMock

from kbmatch.core.config import ERROR_MESSAGE, NOT_READY_MESSAGE, MatchSettings, load_category_keywords
from kbmatch.core.errors import ModelUnavailableError
from kbmatch.core.storage import InMemoryKeyValueStore
from kbmatch.vector.cache import EmbeddingCache
from kbmatch.vector.categories import CategoryIndex
from kbmatch.vector.engine import MatchEngine, apply_threshold_policy
from kbmatch.vector.index import cosine_similarity
from kbmatch.vector.types import Entry, ScoredEntry

KEYWORDS = {
    "health": ["health", "clinic"],
    "pensions": ["pension", "retire"],
    "migracion": ["migrant", "permit"],
}

VECTORS = {
    "health clinic hours": [1.0, 0.0, 0.0],
    "pension age requirement": [0.0, 1.0, 0.0],
    "work permit for migrants": [0.0, 0.0, 1.0],
    "what are the pension rules": [0.2, 0.9, 0.3],
    "something unrelated": [0.6, 0.6, 0.52],
}


@pytest.fixture
def entries():
    return [
        Entry(id="A", primary_text="health clinic hours", category="health"),
        Entry(id="B", primary_text="pension age requirement", category="pensions"),
        Entry(id="C", primary_text="work permit for migrants", category="migracion"),
    ]


def make_provider(vectors=VECTORS):
    provider = MagicMock()
    provider.is_ready.return_value = True
    provider.embed_text.side_effect = lambda text: vectors[text]
    return provider


def make_engine(entries, provider=None, cache=None, settings=None):
    return MatchEngine(
        entries,
        provider or make_provider(),
        cache=cache,
        category_index=CategoryIndex(KEYWORDS),
        settings=settings or MatchSettings(),
    )


def scored(entry_id, score, category="general"):
    return ScoredEntry(entry=Entry(id=entry_id, primary_text=f"question {entry_id}",
                                   secondary_text=f"answer {entry_id}", category=category), score=score)


class TestEndToEnd:

    def test_pension_query_matches_pension_entry(self, entries):
        engine = make_engine(entries)
        asyncio.run(engine.load())

        result = asyncio.run(engine.find_best_match("what are the pension rules"))

        expected = cosine_similarity(VECTORS["what are the pension rules"], VECTORS["pension age requirement"]) * 100
        assert result.status == "matched"
        assert result.matched_entry_id == "B"
        assert result.answer == "pension age requirement"
        assert result.confidence == pytest.approx(expected)
        assert result.category == "pensions"

    def test_pension_query_only_searches_pension_bucket(self, entries):
        engine = make_engine(entries)
        asyncio.run(engine.load())

        assert engine.candidates("what are the pension rules") == ["B"]

    def test_exact_mode_searches_everything(self, entries):
        engine = make_engine(entries, settings=MatchSettings(search_mode="exact"))
        asyncio.run(engine.load())

        assert engine.candidates("what are the pension rules") == ["A", "B", "C"]

    def test_unclassified_query_scans_all_entries(self, entries):
        engine = make_engine(entries)
        asyncio.run(engine.load())

        result = asyncio.run(engine.find_best_match("something unrelated"))

        assert engine.candidates("something unrelated") == ["A", "B", "C"]
        # A and B tie at the top; A comes first in candidate order
        assert result.matched_entry_id == "A"
        assert [alt.entry_id for alt in result.alternatives] == ["B", "C"]

    def test_packaged_keywords_with_unmatched_category_ids(self, entries):
        # the packaged table detects "pensiones", which no entry uses
        engine = MatchEngine(entries, make_provider(),
                             category_index=CategoryIndex(load_category_keywords()),
                             settings=MatchSettings())
        asyncio.run(engine.load())

        result = asyncio.run(engine.find_best_match("what are the pension rules"))

        assert engine.candidates("what are the pension rules") == ["A", "B", "C"]
        assert result.status == "matched"
        assert result.matched_entry_id == "B"

    def test_one_provider_call_per_query(self, entries):
        provider = make_provider()
        engine = make_engine(entries, provider=provider)
        asyncio.run(engine.load())
        provider.embed_text.reset_mock()

        asyncio.run(engine.find_best_match("what are the pension rules"))

        provider.embed_text.assert_called_once_with("what are the pension rules")


class TestReadiness:

    def test_not_loaded_returns_loading_without_provider_call(self, entries):
        provider = make_provider()
        engine = make_engine(entries, provider=provider)

        result = asyncio.run(engine.find_best_match("what are the pension rules"))

        assert result.status == "loading"
        assert result.answer == NOT_READY_MESSAGE
        assert result.confidence == 0
        assert result.alternatives == []
        provider.embed_text.assert_not_called()

    def test_model_not_ready_returns_loading_without_provider_call(self, entries):
        provider = make_provider()
        engine = make_engine(entries, provider=provider)
        asyncio.run(engine.load())
        provider.embed_text.reset_mock()
        provider.is_ready.return_value = False

        result = asyncio.run(engine.find_best_match("what are the pension rules"))

        assert result.status == "loading"
        assert result.confidence == 0
        provider.embed_text.assert_not_called()

    def test_model_unavailable_during_query(self, entries):
        provider = make_provider()
        engine = make_engine(entries, provider=provider)
        asyncio.run(engine.load())
        provider.embed_text.side_effect = ModelUnavailableError("unloaded")

        result = asyncio.run(engine.find_best_match("what are the pension rules"))

        assert result.status == "loading"
        assert result.confidence == 0

    def test_ready_only_after_load(self, entries):
        engine = make_engine(entries)
        assert engine.ready is False

        asyncio.run(engine.load())

        assert engine.ready is True
        assert engine.stats()["vector_count"] == 3


class TestFailureContainment:

    def test_query_failure_returns_apology(self, entries):
        provider = make_provider()
        engine = make_engine(entries, provider=provider)
        asyncio.run(engine.load())
        provider.embed_text.side_effect = RuntimeError("inference crashed")

        result = asyncio.run(engine.find_best_match("what are the pension rules"))

        assert result.status == "error"
        assert result.answer == ERROR_MESSAGE
        assert result.confidence == 0
        assert result.alternatives == []

    def test_next_query_unaffected_by_failure(self, entries):
        provider = make_provider()
        engine = make_engine(entries, provider=provider)
        asyncio.run(engine.load())

        provider.embed_text.side_effect = RuntimeError("inference crashed")
        asyncio.run(engine.find_best_match("what are the pension rules"))
        provider.embed_text.side_effect = lambda text: VECTORS[text]

        result = asyncio.run(engine.find_best_match("what are the pension rules"))

        assert result.matched_entry_id == "B"

    def test_wrong_query_dimension_is_contained(self, entries):
        engine = make_engine(entries, provider=make_provider({**VECTORS, "bad": [1.0, 0.0]}))
        asyncio.run(engine.load())

        assert asyncio.run(engine.find_best_match("bad")).status == "error"


class TestCacheIntegration:

    def test_second_load_uses_cache(self, entries):
        cache = EmbeddingCache(InMemoryKeyValueStore(), "v1.0:test")
        first = make_engine(entries, cache=cache)
        asyncio.run(first.load())
        assert first.cache_hit is False

        provider = make_provider()
        second = make_engine(entries, provider=provider, cache=cache)
        asyncio.run(second.load())

        assert second.cache_hit is True
        provider.embed_text.assert_not_called()
        result = asyncio.run(second.find_best_match("what are the pension rules"))
        assert result.matched_entry_id == "B"

    def test_edited_entries_recompute(self, entries):
        cache = EmbeddingCache(InMemoryKeyValueStore(), "v1.0:test")
        asyncio.run(make_engine(entries, cache=cache).load())

        edited = entries[:2] + [Entry(id="C", primary_text="something unrelated", category="general")]
        provider = make_provider()
        engine = make_engine(edited, provider=provider, cache=cache)
        asyncio.run(engine.load())

        assert engine.cache_hit is False
        assert provider.embed_text.call_count == 3

    def test_load_reports_progress(self, entries):
        progress = []
        engine = make_engine(entries, settings=MatchSettings(batch_size=2))

        asyncio.run(engine.load(progress=lambda done, total: progress.append((done, total))))

        assert progress == [(2, 3), (3, 3)]


class TestThresholdPolicy:

    def test_score_exactly_30_is_confident(self):
        result = apply_threshold_policy([scored("a", 30.0)], MatchSettings())

        assert result.status == "matched"
        assert result.answer == "answer a"
        assert result.matched_entry_id == "a"
        assert result.matched_text == "question a"

    def test_score_below_30_uses_fallback(self):
        result = apply_threshold_policy([scored("a", 25.0), scored("b", 20.0)], MatchSettings(), ["salud", "trabajo"])

        assert result.status == "no_match"
        assert result.confidence == 25.0
        assert result.matched_entry_id is None
        assert result.answer != "answer a"
        assert "salud, trabajo" in result.answer
        assert result.alternatives == []

    def test_fallback_keeps_alternatives(self):
        # thresholds where a runner-up can beat the alternative floor while the best is unconfident
        settings = MatchSettings(confidence_threshold=60.0)
        result = apply_threshold_policy([scored("a", 55.0), scored("b", 45.0)], settings)

        assert result.status == "no_match"
        assert [alt.entry_id for alt in result.alternatives] == ["b"]

    def test_alternative_at_40_excluded(self):
        result = apply_threshold_policy([scored("a", 90.0), scored("b", 40.0)], MatchSettings())

        assert result.alternatives == []

    def test_alternatives_strictly_above_40(self):
        result = apply_threshold_policy(
            [scored("a", 90.0), scored("b", 40.01, "salud"), scored("c", 40.0)], MatchSettings()
        )

        assert [(alt.entry_id, alt.category) for alt in result.alternatives] == [("b", "salud")]
        assert result.alternatives[0].confidence == 40.01

    def test_alternatives_window_is_four(self):
        ranked = [scored(str(i), 90.0 - i) for i in range(8)]

        result = apply_threshold_policy(ranked, MatchSettings())

        assert [alt.entry_id for alt in result.alternatives] == ["1", "2", "3", "4"]

    def test_alternative_text_is_excerpted(self):
        long_entry = ScoredEntry(entry=Entry(id="b", primary_text="x" * 300), score=80.0)

        result = apply_threshold_policy([scored("a", 90.0), long_entry], MatchSettings(excerpt_max_chars=50))

        assert len(result.alternatives[0].text) == 50
        assert result.alternatives[0].text.endswith("...")

    def test_empty_ranking(self):
        result = apply_threshold_policy([], MatchSettings())

        assert result.status == "no_match"
        assert result.confidence == 0.0

    def test_proposal_without_answer_returns_statement(self):
        proposal = ScoredEntry(entry=Entry(id="p", primary_text="Crear un fondo de becas"), score=70.0)

        assert apply_threshold_policy([proposal], MatchSettings()).answer == "Crear un fondo de becas"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
