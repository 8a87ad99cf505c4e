# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
HTTP API (FastAPI) – index lifecycle, search, diagnostics.

All state (config, registry, health) is injected via create_web_app().
Handlers that touch the indices are plain `def` so FastAPI runs them on
its worker threads; builds and queries for different projects overlap.
"""
import logging
from typing import Any, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import Config
from .errors import InputError, ProjectNotFound
from .health import HealthTracker
from .manager import ProjectIndexRegistry
from .models import HybridQuery, ScoredChunk, Weights
from .quality import RetrievalQualityChecker

logger = logging.getLogger(__name__)

REINITIALIZE_ACTION = "reinitialize-hybrid"


class WeightsBody(BaseModel):
    # left untyped so Weights.parse rejects strings and booleans instead of
    # pydantic coercing them
    semantic: Any = 0.7
    keyword: Any = 0.3


class SearchRequest(BaseModel):
    query: str = ""
    k: Optional[int] = None
    weights: Optional[WeightsBody] = None


class VectorsAction(BaseModel):
    action: str = ""


def format_results(
    results: Sequence[ScoredChunk], result_type: str, preview_chars: int,
) -> list[dict]:
    out = []
    for rank, hit in enumerate(results, 1):
        text = hit.text
        out.append({
            "rank": rank,
            "type": result_type,
            "score": hit.score,
            "source": hit.source,
            "pageTitle": hit.page_title,
            "pageId": hit.chunk.metadata.page_id,
            "chunkId": hit.id,
            "content": text[:preview_chars] + "..." if len(text) > preview_chars else text,
            "metadata": hit.chunk.metadata.to_dict(),
        })
    return out


def create_web_app(
    config: Config,
    registry: ProjectIndexRegistry,
    health: HealthTracker | None = None,
) -> FastAPI:
    """Factory: returns a FastAPI app bound to one registry."""
    from . import __version__

    app = FastAPI(
        title="Pagevault",
        description="Hybrid (BM25 + semantic) retrieval over project pages",
        version=__version__,
    )
    health = health or registry.health
    quality_checker = RetrievalQualityChecker(registry)

    @app.exception_handler(InputError)
    async def input_error_handler(_request: Request, exc: InputError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(ProjectNotFound)
    async def not_found_handler(_request: Request, exc: ProjectNotFound):
        return JSONResponse(status_code=404, content={"error": "Project not found"})

    def parse_query(project_id: str, req: SearchRequest) -> HybridQuery:
        if not req.query or not req.query.strip():
            raise InputError("Query is required")
        if req.weights is not None:
            weights = Weights.parse(req.weights.semantic, req.weights.keyword)
        else:
            weights = Weights.parse(config.semantic_weight, config.keyword_weight)
        return HybridQuery(
            project_id=project_id,
            query_text=req.query,
            k=req.k if req.k is not None else config.default_top_k,
            weights=weights,
        )

    # ── Health ───────────────────────────────────────────

    @app.get("/health")
    async def health_check():
        status = health.status
        return {
            "status": "ok" if health.is_healthy else "degraded",
            "version": __version__,
            "projects_indexed": len(registry.project_ids()),
            "embedding_provider": config.embedding_provider,
            "embedding_model": config.active_embedding_model,
            **status,
        }

    # ── Index lifecycle ──────────────────────────────────

    @app.get("/api/projects/{project_id}/vectors")
    def get_vectors(project_id: str):
        project = registry.require_project(project_id)
        return {
            "projectId": project_id,
            "projectTitle": project.title,
            "hybridRetriever": registry.get_stats(project_id).to_dict(),
            "message": "Hybrid retriever statistics retrieved successfully",
        }

    @app.post("/api/projects/{project_id}/vectors")
    def build_vectors(project_id: str):
        project = registry.require_project(project_id)
        outcome = registry.create_or_update_index(project)
        if outcome.ok:
            return {"success": True}
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to initialize vectors",
                     "details": outcome.reason},
        )

    @app.put("/api/projects/{project_id}/vectors")
    def reinitialize_vectors(project_id: str, body: VectorsAction):
        if body.action != REINITIALIZE_ACTION:
            return JSONResponse(
                status_code=400, content={"error": "Invalid action", "success": False},
            )
        outcome = registry.force_reinitialize(project_id)
        if outcome.ok:
            return {
                "success": True,
                "message": "Hybrid retriever reinitialized successfully",
            }
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Failed to reinitialize hybrid retriever",
                "details": outcome.reason,
            },
        )

    @app.post("/api/projects/{project_id}/regenerate-vectors")
    def regenerate_vectors(project_id: str):
        project = registry.require_project(project_id)
        outcome = registry.force_reinitialize(project_id)
        if outcome.ok:
            return {
                "success": True,
                "message": "Vectors regenerated successfully!",
                "projectId": project_id,
                "projectTitle": project.title,
            }
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to regenerate vectors",
                     "details": outcome.reason},
        )

    @app.post("/api/regenerate-all-vectors")
    def regenerate_all():
        results = registry.rebuild_all()
        success = results["failed"] == 0
        if not results["total"]:
            message = "No projects found to regenerate"
        elif success:
            message = f"Successfully regenerated indexes for {results['successful']} projects"
        else:
            message = (
                f"Completed with {results['successful']} successes "
                f"and {results['failed']} failures"
            )
        return {"success": success, "message": message, "results": results}

    # ── Search ───────────────────────────────────────────

    @app.post("/api/projects/{project_id}/search")
    def search(project_id: str, req: SearchRequest):
        registry.require_project(project_id)
        query = parse_query(project_id, req)
        result = registry.search(query)
        return {
            "query": query.query_text,
            "count": len(result.results),
            "results": format_results(result.results, "hybrid", config.preview_chars),
            "degraded": result.degraded,
            "indexAvailable": result.index_available,
            "lexicalFallback": result.lexical_fallback,
            "error": result.error,
        }

    @app.post("/api/projects/{project_id}/test-hybrid-search")
    def test_hybrid_search(project_id: str, req: SearchRequest):
        registry.require_project(project_id)
        query = parse_query(project_id, req)
        logger.info("[%s] Testing hybrid search for query %r", project_id, query.query_text)

        result = registry.search(query)
        semantic = registry.semantic_search(project_id, query.query_text, query.k)
        return {
            "query": query.query_text,
            "weights": query.weights.to_dict(),
            "hybridResults": format_results(result.results, "hybrid", config.preview_chars),
            "semanticResults": format_results(semantic, "semantic", config.preview_chars),
            "summary": {
                "hybridCount": len(result.results),
                "semanticCount": len(semantic),
                "degraded": result.degraded,
                "indexAvailable": result.index_available,
                "lexicalFallback": result.lexical_fallback,
                "error": result.error,
                "hybridRetrieverStats": registry.get_stats(project_id).to_dict(),
            },
        }

    @app.post("/api/projects/{project_id}/test-retrieval-quality")
    def test_retrieval_quality(project_id: str, req: SearchRequest):
        if not req.query or not req.query.strip():
            raise InputError("Query is required")
        weights = None
        if req.weights is not None:
            weights = Weights.parse(req.weights.semantic, req.weights.keyword)
        analysis = quality_checker.check(project_id, req.query, weights)
        return {"success": True, "analysis": analysis}

    return app
