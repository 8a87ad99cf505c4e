# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Per-project BM25 keyword index.

score = sum over query terms of
    idf(t) * tf*(k1+1) / (tf + k1*(1 - b + b*docLen/avgDocLen))
idf(t) = ln((N - df + 0.5) / (df + 0.5))

Document length and average length are measured in tokens, the same unit
as tf. Terms absent from the corpus contribute 0.

Queries apply a per-query relevance cutoff:
    threshold = max(min_threshold, max_ratio*max, avg_ratio*avg)
over the positive scores, keeping the top fallback_top_n hits when the
cutoff would drop everything.

An index is immutable once built: rebuilds construct a new LexicalIndex
and the registry swaps the reference.
"""
import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Sequence

from .config import Config
from .models import Chunk, ScoredChunk
from .tokenizer import tokenize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LexicalSettings:
    k1: float = 1.2
    b: float = 0.75
    idf_floor: Optional[float] = 0.01
    min_threshold: float = 0.1
    max_score_ratio: float = 0.2
    avg_score_ratio: float = 0.5
    fallback_top_n: int = 2

    @classmethod
    def from_config(cls, config: Config) -> "LexicalSettings":
        return cls(
            k1=config.bm25_k1,
            b=config.bm25_b,
            idf_floor=config.idf_floor,
            min_threshold=config.min_threshold,
            max_score_ratio=config.max_score_ratio,
            avg_score_ratio=config.avg_score_ratio,
            fallback_top_n=config.fallback_top_n,
        )


class LexicalIndex:
    def __init__(
        self,
        documents: tuple[Chunk, ...],
        term_doc_frequency: dict[str, int],
        per_doc_term_frequency: tuple[Counter, ...],
        doc_lengths: tuple[int, ...],
        settings: LexicalSettings,
    ):
        self.documents = documents
        self.term_doc_frequency = term_doc_frequency
        self.per_doc_term_frequency = per_doc_term_frequency
        self.doc_lengths = doc_lengths
        self.settings = settings
        total = sum(doc_lengths)
        self.avg_doc_length = total / len(documents) if documents else 0.0

    @classmethod
    def build(cls, chunks: Sequence[Chunk], settings: LexicalSettings | None = None) -> "LexicalIndex":
        """Tokenize every chunk and build both frequency maps in one pass."""
        settings = settings or LexicalSettings()
        term_doc_frequency: dict[str, int] = {}
        per_doc: list[Counter] = []
        lengths: list[int] = []

        for chunk in chunks:
            terms = tokenize(chunk.text)
            counts = Counter(terms)
            for term in counts:
                term_doc_frequency[term] = term_doc_frequency.get(term, 0) + 1
            per_doc.append(counts)
            lengths.append(len(terms))

        index = cls(
            documents=tuple(chunks),
            term_doc_frequency=term_doc_frequency,
            per_doc_term_frequency=tuple(per_doc),
            doc_lengths=tuple(lengths),
            settings=settings,
        )
        logger.debug(
            "BM25 index built: %d chunks, %d unique terms, avg length %.1f tokens",
            len(index), len(term_doc_frequency), index.avg_doc_length,
        )
        return index

    def __len__(self) -> int:
        return len(self.documents)

    # ── Scoring ──────────────────────────────────────────

    def idf(self, term: str) -> float:
        df = self.term_doc_frequency.get(term, 0)
        if df == 0:
            return 0.0
        n = len(self.documents)
        value = math.log((n - df + 0.5) / (df + 0.5))
        floor = self.settings.idf_floor
        if floor is not None and value < floor:
            return floor
        return value

    def score(self, query_terms: Sequence[str], doc_index: int) -> float:
        term_freqs = self.per_doc_term_frequency[doc_index]
        doc_len = self.doc_lengths[doc_index]
        k1, b = self.settings.k1, self.settings.b
        # avg_doc_length is 0 only when every chunk tokenized to nothing,
        # in which case no tf is ever > 0
        length_ratio = doc_len / self.avg_doc_length if self.avg_doc_length else 0.0

        score = 0.0
        for term in query_terms:
            tf = term_freqs.get(term, 0)
            if tf == 0:
                continue
            idf = self.idf(term)
            if idf == 0.0:
                continue
            score += idf * (tf * (k1 + 1)) / (tf + k1 * (1 - b + b * length_ratio))
        return score

    # ── Query ────────────────────────────────────────────

    def query(self, text: str, k: int) -> list[ScoredChunk]:
        """Ranked lexical hits for text, at most k."""
        if k <= 0 or not self.documents:
            return []

        query_terms = tokenize(text)
        if not query_terms:
            logger.debug("Empty query terms, returning first %d chunks", k)
            return [
                ScoredChunk(chunk=c, score=0.0, source="lexical", lexical_rank=i)
                for i, c in enumerate(self.documents[:k])
            ]

        scored = [
            (i, self.score(query_terms, i)) for i in range(len(self.documents))
        ]
        positive = [(i, s) for i, s in scored if s > 0]
        if not positive:
            return []

        # stable: equal scores keep index order
        positive.sort(key=lambda pair: pair[1], reverse=True)
        scores = [s for _, s in positive]
        max_score = scores[0]
        avg_score = sum(scores) / len(scores)
        threshold = max(
            self.settings.min_threshold,
            self.settings.max_score_ratio * max_score,
            self.settings.avg_score_ratio * avg_score,
        )

        kept = [(i, s) for i, s in positive if s >= threshold]
        if not kept:
            logger.debug(
                "Threshold %.3f dropped all %d hits (max %.3f), keeping top %d",
                threshold, len(positive), max_score, self.settings.fallback_top_n,
            )
            kept = positive[: self.settings.fallback_top_n]

        return [
            ScoredChunk(
                chunk=self.documents[i], score=s, source="lexical", lexical_rank=rank,
            )
            for rank, (i, s) in enumerate(kept[:k])
        ]

    # ── Stats ────────────────────────────────────────────

    def stats(self) -> dict:
        return {
            "chunk_count": len(self.documents),
            "unique_terms": len(self.term_doc_frequency),
            "average_chunk_length": self.avg_doc_length,
        }
