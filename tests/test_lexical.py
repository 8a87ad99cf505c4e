"""Tests for the BM25 lexical index."""
import math

import pytest

from pagevault.lexical import LexicalIndex, LexicalSettings
from pagevault.models import Chunk, ChunkMetadata


def _chunks(*texts, titles=None):
    titles = titles or [f"Page {i}" for i in range(len(texts))]
    return [
        Chunk(id=f"c{i}", text=t, metadata=ChunkMetadata("proj", f"p{i}", titles[i], 0))
        for i, t in enumerate(texts)
    ]


@pytest.fixture
def small_index():
    return LexicalIndex.build(_chunks(
        "apple banana",
        "apple cherry cherry",
        "durian",
    ))


class TestBuild:
    def test_document_frequency_counted_once_per_chunk(self, small_index):
        assert small_index.term_doc_frequency["apple"] == 2
        assert small_index.term_doc_frequency["cherry"] == 1

    def test_per_doc_term_frequency(self, small_index):
        assert small_index.per_doc_term_frequency[1]["cherry"] == 2

    def test_average_length_in_tokens(self, small_index):
        assert small_index.doc_lengths == (2, 3, 1)
        assert small_index.avg_doc_length == pytest.approx(2.0)

    def test_maps_consistent(self, small_index):
        for term, df in small_index.term_doc_frequency.items():
            containing = sum(1 for tf in small_index.per_doc_term_frequency if tf.get(term))
            assert containing == df

    def test_empty_corpus(self):
        index = LexicalIndex.build([])
        assert len(index) == 0
        assert index.avg_doc_length == 0.0
        assert index.query("anything", 5) == []
        assert index.query("", 5) == []

    def test_stats(self, small_index):
        stats = small_index.stats()
        assert stats["chunk_count"] == 3
        assert stats["unique_terms"] == 4
        assert stats["average_chunk_length"] == pytest.approx(2.0)


class TestScore:
    def test_matches_bm25_formula(self, small_index):
        idf = math.log((3 - 1 + 0.5) / (1 + 0.5))
        tf, doc_len, avg = 2, 3, 2.0
        expected = idf * tf * 2.2 / (tf + 1.2 * (1 - 0.75 + 0.75 * doc_len / avg))
        assert small_index.score(["cherry"], 1) == pytest.approx(expected)

    def test_absent_term_contributes_zero(self, small_index):
        assert small_index.score(["zebra"], 0) == 0.0
        assert small_index.idf("zebra") == 0.0

    def test_common_term_floored(self, small_index):
        assert small_index.idf("apple") == pytest.approx(0.01)

    def test_common_term_negative_without_floor(self):
        index = LexicalIndex.build(
            _chunks("apple banana", "apple cherry", "durian"),
            LexicalSettings(idf_floor=None),
        )
        assert index.idf("apple") < 0
        assert index.query("apple", 5) == []

    def test_scores_sum_over_terms(self, small_index):
        both = small_index.score(["cherry", "apple"], 1)
        assert both == pytest.approx(
            small_index.score(["cherry"], 1) + small_index.score(["apple"], 1)
        )


class TestQuery:
    def test_budget_example(self):
        index = LexicalIndex.build(_chunks(
            "Q3 revenue targets and budget allocation",
            "pasta and tomato sauce recipe",
            titles=["Budget", "Recipes"],
        ))
        results = index.query("budget", 5)
        assert results[0].page_title == "Budget"
        assert results[0].score > 0
        assert all(r.page_title != "Recipes" for r in results)

    def test_empty_query_returns_first_k_in_order(self, small_index):
        results = small_index.query("", 2)
        assert [r.id for r in results] == ["c0", "c1"]
        assert all(r.source == "lexical" for r in results)

    def test_stop_word_only_query_falls_back(self, small_index):
        assert [r.id for r in small_index.query("the and of", 5)] == ["c0", "c1", "c2"]

    def test_no_positive_scores_returns_empty(self, small_index):
        assert small_index.query("zebra", 5) == []

    def test_results_positive_and_sorted(self):
        index = LexicalIndex.build(_chunks(
            "budget review for the marketing budget",
            "the launch budget is final",
            "hiring plan for designers",
            "budget budget budget",
            "weekly sync notes",
        ))
        results = index.query("budget marketing", 10)
        assert results
        assert all(r.score > 0 for r in results)
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_dynamic_threshold_drops_weak_match(self):
        texts = ["budget budget budget budget",
                 "budget plus lots of words here " + "filler " * 16]
        texts += [f"unrelated text item{i}" for i in range(8)]
        index = LexicalIndex.build(_chunks(*texts))
        assert index.score(["budget"], 1) > 0
        assert [r.id for r in index.query("budget", 10)] == ["c0"]

    def test_fallback_keeps_top_n_when_threshold_drops_all(self):
        texts = ["common alpha", "common beta", "gamma"]
        index = LexicalIndex.build(_chunks(*texts))
        results = index.query("common", 10)
        assert len(results) == 2
        assert all(r.score > 0 for r in results)

    def test_fallback_count_configurable(self):
        texts = ["common alpha", "common beta", "gamma"]
        index = LexicalIndex.build(_chunks(*texts), LexicalSettings(fallback_top_n=1))
        assert len(index.query("common", 10)) == 1

    def test_truncates_to_k(self):
        index = LexicalIndex.build(_chunks(*[f"budget item{i}" for i in range(3)]
                                           + [f"other thing{i}" for i in range(7)]))
        assert len(index.query("budget", 2)) == 2

    def test_ranks_assigned(self, small_index):
        results = small_index.query("cherry", 5)
        assert [r.lexical_rank for r in results] == list(range(len(results)))

    def test_build_is_idempotent(self):
        texts = ["budget review", "launch budget final", "hiring designers", "weekly notes"]
        a = LexicalIndex.build(_chunks(*texts))
        b = LexicalIndex.build(_chunks(*texts))
        for q in ["budget", "designers hiring", "", "zebra"]:
            assert [(r.id, r.score) for r in a.query(q, 5)] == [(r.id, r.score) for r in b.query(q, 5)]
