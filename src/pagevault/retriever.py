# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Query path: one ProjectIndexState snapshot in, ranked chunks out.

The semantic lookup runs on a worker thread while the lexical lookup runs
on the caller's thread, so a query waits only for the slower of the two.
A failing or slow semantic index degrades the answer to lexical-only
instead of failing the query.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Optional

from .config import Config
from .errors import AdapterFailure, IndexUnavailable
from .fusion import fuse
from .models import HybridQuery, ProjectIndexState, ScoredChunk
from .semantic import SemanticIndex
from .tokenizer import tokenize

logger = logging.getLogger(__name__)


@dataclass
class RetrievalResult:
    results: list[ScoredChunk] = field(default_factory=list)
    index_available: bool = True
    degraded: bool = False
    lexical_fallback: bool = False
    error: Optional[str] = None

    @property
    def hit(self) -> bool:
        return bool(self.results)


class HybridRetriever:
    def __init__(self, config: Config, semantic: SemanticIndex, max_workers: int = 4):
        self.config = config
        self.semantic = semantic
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="semantic-search",
        )

    def close(self):
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ── Single-sided lookups ─────────────────────────────

    def lexical_search(self, state: ProjectIndexState, query_text: str, k: int) -> list[ScoredChunk]:
        if state.lexical is None:
            return []
        return state.lexical.query(query_text, k)

    def semantic_search(self, state: ProjectIndexState, query_text: str, k: int) -> list[ScoredChunk]:
        """Semantic hits, raising AdapterFailure on any adapter error."""
        if state.semantic_handle is None:
            return []
        try:
            return self.semantic.search(state.semantic_handle, query_text, k)
        except Exception as e:
            raise AdapterFailure(f"semantic search failed: {e}") from e

    def _submit_semantic(self, state: ProjectIndexState, query_text: str, k: int) -> Optional[Future]:
        if state.semantic_handle is None:
            return None
        return self._executor.submit(self.semantic_search, state, query_text, k)

    def _await_semantic(self, future: Optional[Future]) -> list[ScoredChunk]:
        if future is None:
            return []
        try:
            return future.result(timeout=self.config.semantic_timeout)
        except FutureTimeout as e:
            future.cancel()
            raise AdapterFailure(
                f"semantic search timed out after {self.config.semantic_timeout}s"
            ) from e

    # ── Hybrid ───────────────────────────────────────────

    def search(self, state: Optional[ProjectIndexState], query: HybridQuery) -> RetrievalResult:
        if state is None or not state.is_servable:
            return RetrievalResult(
                index_available=False, error=str(IndexUnavailable(query.project_id)),
            )

        fetch_k = self.config.fetch_size(query.k)
        lexical_fallback = not tokenize(query.query_text)

        future = self._submit_semantic(state, query.query_text, fetch_k)
        lexical_hits = self.lexical_search(state, query.query_text, fetch_k)

        try:
            semantic_hits = self._await_semantic(future)
        except AdapterFailure as e:
            logger.warning(
                "[%s] %s, serving lexical-only results", query.project_id, e,
            )
            return RetrievalResult(
                results=lexical_hits[: query.k],
                degraded=True,
                lexical_fallback=lexical_fallback,
                error=str(e),
            )

        fused = fuse(lexical_hits, semantic_hits, query.weights, query.k)
        logger.debug(
            "[%s] query=%r lexical=%d semantic=%d fused=%d",
            query.project_id, query.query_text, len(lexical_hits),
            len(semantic_hits), len(fused),
        )
        return RetrievalResult(results=fused, lexical_fallback=lexical_fallback)
