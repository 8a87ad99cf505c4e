# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Weighted score fusion of a lexical and a semantic ranked list.

Each list is min-max normalized on its own (BM25 scores and cosine
similarities live on unrelated scales), then

    hybrid = keyword * norm_lexical + semantic * norm_semantic

with 0 for the side a chunk is missing from.
"""
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from .models import ScoredChunk, Weights


def min_max_normalize(scores: Sequence[float]) -> list[float]:
    """Scale to [0, 1]. A list of identical scores maps to all 1.0."""
    if not scores:
        return []
    lo, hi = min(scores), max(scores)
    span = hi - lo
    if span <= 0 or math.isclose(span, 0.0, abs_tol=1e-12):
        return [1.0] * len(scores)
    return [(s - lo) / span for s in scores]


@dataclass
class _Candidate:
    hit: ScoredChunk
    lexical: float = 0.0
    semantic: float = 0.0
    lexical_rank: Optional[int] = None
    semantic_rank: Optional[int] = None

    @property
    def in_both(self) -> bool:
        return self.lexical_rank is not None and self.semantic_rank is not None


def _dedup(hits: Sequence[ScoredChunk]) -> list[ScoredChunk]:
    """First occurrence of each chunk id wins (lists arrive ranked)."""
    seen: set[str] = set()
    out = []
    for hit in hits:
        if hit.id in seen:
            continue
        seen.add(hit.id)
        out.append(hit)
    return out


def fuse(
    lexical: Sequence[ScoredChunk],
    semantic: Sequence[ScoredChunk],
    weights: Weights,
    k: int,
) -> list[ScoredChunk]:
    """Merge both lists into at most k hybrid hits, one per chunk id."""
    if k <= 0:
        return []
    lexical = _dedup(lexical)
    semantic = _dedup(semantic)
    if not lexical and not semantic:
        return []

    total = weights.semantic + weights.keyword
    if total > 0 and not math.isclose(total, 1.0):
        weights = Weights(semantic=weights.semantic / total, keyword=weights.keyword / total)

    candidates: dict[str, _Candidate] = {}
    for rank, (hit, norm) in enumerate(zip(lexical, min_max_normalize([h.score for h in lexical]))):
        candidates[hit.id] = _Candidate(hit=hit, lexical=norm, lexical_rank=rank)
    for rank, (hit, norm) in enumerate(zip(semantic, min_max_normalize([h.score for h in semantic]))):
        cand = candidates.get(hit.id)
        if cand is None:
            cand = candidates[hit.id] = _Candidate(hit=hit)
        cand.semantic = norm
        cand.semantic_rank = rank

    # ties go to the rank on the heavier-weighted side; lexical first when even
    semantic_first = weights.semantic > weights.keyword

    def sort_key(item: tuple[float, _Candidate]):
        score, cand = item
        lexical_rank = cand.lexical_rank if cand.lexical_rank is not None else math.inf
        semantic_rank = cand.semantic_rank if cand.semantic_rank is not None else math.inf
        ranks = (semantic_rank, lexical_rank) if semantic_first else (lexical_rank, semantic_rank)
        return (-score, 0 if cand.in_both else 1, *ranks)

    scored = [
        (weights.keyword * c.lexical + weights.semantic * c.semantic, c)
        for c in candidates.values()
    ]
    scored.sort(key=sort_key)

    return [
        ScoredChunk(
            chunk=cand.hit.chunk,
            score=score,
            source="hybrid",
            lexical_rank=cand.lexical_rank,
            semantic_rank=cand.semantic_rank,
        )
        for score, cand in scored[:k]
    ]
