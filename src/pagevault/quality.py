# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Retrieval quality check – runs one query through hybrid, semantic-only and
lexical-only search and compares the three listings.

Issues have severity levels: high, medium, info.
Quality score starts at 100 and decreases per issue.
"""
from typing import Sequence

from .manager import ProjectIndexRegistry
from .models import HybridQuery, ScoredChunk, Weights

SEVERITY_PENALTY = {"high": 30, "medium": 10, "info": 0}
LOW_OVERLAP_PERCENT = 30


def _issue(severity: str, issue: str, solution: str) -> dict:
    return {"severity": severity, "issue": issue, "solution": solution}


def page_overlap(a: Sequence[ScoredChunk], b: Sequence[ScoredChunk]) -> int:
    """Shared pages as a percentage of the larger page set (0-100)."""
    if not a or not b:
        return 0
    pages_a = {h.chunk.metadata.page_id for h in a if h.chunk.metadata.page_id}
    pages_b = {h.chunk.metadata.page_id for h in b if h.chunk.metadata.page_id}
    larger = max(len(pages_a), len(pages_b))
    if larger == 0:
        return 0
    return round(len(pages_a & pages_b) / larger * 100)


def _listing(hits: Sequence[ScoredChunk], preview_chars: int, limit: int) -> list[dict]:
    out = []
    for rank, hit in enumerate(hits[:limit], 1):
        text = hit.text
        out.append({
            "rank": rank,
            "pageTitle": hit.page_title or "Unknown",
            "score": hit.score,
            "source": hit.source,
            "contentPreview": text[:preview_chars] + "..." if len(text) > preview_chars else text,
            "contentLength": len(text),
        })
    return out


class RetrievalQualityChecker:
    def __init__(self, registry: ProjectIndexRegistry, k: int = 10):
        self.registry = registry
        self.k = k

    def check(self, project_id: str, query_text: str, weights: Weights | None = None) -> dict:
        project = self.registry.require_project(project_id)
        preview = self.registry.config.preview_chars
        query = HybridQuery(
            project_id=project_id, query_text=query_text, k=self.k,
            weights=weights or Weights(
                semantic=self.registry.config.semantic_weight,
                keyword=self.registry.config.keyword_weight,
            ),
        )

        result = self.registry.search(query)
        hybrid = result.results
        semantic = self.registry.semantic_search(project_id, query_text, self.k)
        lexical = self.registry.lexical_search(project_id, query_text, self.k)

        metrics = {
            "hybridVsSemanticOverlap": page_overlap(hybrid, semantic),
            "hybridVsLexicalOverlap": page_overlap(hybrid, lexical),
            "foundByBoth": sum(
                1 for h in hybrid
                if h.lexical_rank is not None and h.semantic_rank is not None
            ),
            "semanticOnly": sum(
                1 for h in hybrid if h.lexical_rank is None and h.semantic_rank is not None
            ),
            "lexicalOnly": sum(
                1 for h in hybrid if h.lexical_rank is not None and h.semantic_rank is None
            ),
        }

        issues = []
        if not result.index_available:
            issues.append(_issue(
                "high", "Project has no index",
                "Build the index (POST /vectors) before querying",
            ))
        elif not hybrid:
            issues.append(_issue(
                "high", "No hybrid search results",
                "Check semantic index initialization and lexical index content",
            ))
        if result.degraded:
            issues.append(_issue(
                "high", "Semantic index unavailable, results are lexical-only",
                "Reinitialize the hybrid index (PUT /vectors)",
            ))
        if result.index_available and not lexical:
            issues.append(_issue(
                "medium", "Lexical search returned no results",
                "Query terms may not occur in any page; check page content",
            ))
        if hybrid and semantic and metrics["hybridVsSemanticOverlap"] < LOW_OVERLAP_PERCENT:
            issues.append(_issue(
                "medium", "Low overlap between hybrid and semantic results",
                "Adjust hybrid search weights",
            ))

        score = 100 - sum(SEVERITY_PENALTY.get(i["severity"], 0) for i in issues)

        return {
            "query": query_text,
            "project": {
                "id": project.id,
                "title": project.title,
                "totalPages": len(project.pages),
            },
            "hybridSearch": {
                "resultCount": len(hybrid),
                "degraded": result.degraded,
                "results": _listing(hybrid, preview, self.k),
            },
            "semanticOnly": {
                "resultCount": len(semantic),
                "results": _listing(semantic, preview, 5),
            },
            "lexicalOnly": {
                "resultCount": len(lexical),
                "results": _listing(lexical, preview, 5),
            },
            "qualityMetrics": metrics,
            "score": max(0, score),
            "recommendations": issues,
        }
