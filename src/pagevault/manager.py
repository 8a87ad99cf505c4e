# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Per-project index lifecycle – one registry per server process.

Each project has one immutable ProjectIndexState (lexical index + semantic
handle + status). Builds run under a per-project lock, go into fresh
structures, and replace the state object in a single assignment once both
sides succeed. Queries read one state reference and never see a mix of
generations. A failed build keeps serving the previous index.

    absent -> building -> ready -> stale -> building -> ...
                       \\-> failed (previous index kept)
"""
import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from .chunker import PageChunker
from .config import Config
from .errors import AdapterFailure, BuildFailure, InputError, ProjectNotFound
from .health import HealthTracker
from .lexical import LexicalIndex, LexicalSettings
from .models import (
    BuildOutcome,
    Failed,
    HybridQuery,
    IndexStats,
    Project,
    ProjectIndexState,
    Ready,
    ScoredChunk,
)
from .retriever import HybridRetriever, RetrievalResult
from .semantic import SemanticHandle, SemanticIndex
from .store import ChangeKind, ProjectStore

logger = logging.getLogger(__name__)


def _validate_project_id(project_id) -> str:
    if not isinstance(project_id, str) or not project_id.strip():
        raise InputError("project id is required")
    return project_id


class ProjectIndexRegistry:
    """Owns the lexical index and semantic handle of every project."""

    def __init__(
        self,
        config: Config,
        store: ProjectStore,
        semantic: SemanticIndex,
        health: HealthTracker | None = None,
    ):
        self.config = config
        self.store = store
        self.semantic = semantic
        self.health = health or HealthTracker()
        self.chunker = PageChunker(config)
        self.lexical_settings = LexicalSettings.from_config(config)
        self.retriever = HybridRetriever(config, semantic)
        self._states: dict[str, ProjectIndexState] = {}
        self._build_locks: dict[str, threading.Lock] = {}
        self._retired: dict[str, list[SemanticHandle]] = {}
        self._lock = threading.Lock()

    def close(self):
        self.retriever.close()

    # ── State access ─────────────────────────────────────

    def get_state(self, project_id: str) -> Optional[ProjectIndexState]:
        with self._lock:
            return self._states.get(project_id)

    def project_ids(self) -> list[str]:
        with self._lock:
            return list(self._states.keys())

    def _set_state(self, state: ProjectIndexState):
        with self._lock:
            self._states[state.project_id] = state

    def _build_lock(self, project_id: str) -> threading.Lock:
        with self._lock:
            return self._build_locks.setdefault(project_id, threading.Lock())

    def require_project(self, project_id: str) -> Project:
        _validate_project_id(project_id)
        project = self.store.get(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    def _release(self, handles: list[SemanticHandle]):
        for handle in handles:
            try:
                self.semantic.release(handle)
            except Exception as e:
                logger.warning("Could not release %s: %s", handle.collection_name, e)

    # ── Build ────────────────────────────────────────────

    def create_or_update_index(self, project: Project) -> BuildOutcome:
        """Rebuild both sides from the project's current pages in the store.

        Concurrent calls for the same project queue behind each other; each
        one reads the pages only once it holds the build lock, so the last
        build to run always sees the latest content."""
        pid = _validate_project_id(project.id)
        with self._build_lock(pid):
            return self._build(self._current_project(pid))

    def _current_project(self, project_id: str) -> Project:
        """Store snapshot, read under the project's build lock."""
        project = self.store.get(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    def _build(self, project: Project, purge: bool = False) -> BuildOutcome:
        pid = project.id
        previous = self.get_state(pid)
        servable = previous if previous is not None and previous.is_servable else None

        if previous is None:
            self._set_state(ProjectIndexState(
                project_id=pid, project_title=project.title, status="building",
            ))
            self._clear_semantic(pid)
        else:
            self._set_state(replace(previous, status="building", project_title=project.title))

        try:
            chunks, lexical, handle = self._build_sides(project)
        except BuildFailure as e:
            reason = str(e)
            logger.error("[%s] Build failed: %s", pid, reason)
            self._set_state(ProjectIndexState(
                project_id=pid,
                project_title=project.title,
                lexical=servable.lexical if servable else None,
                semantic_handle=servable.semantic_handle if servable else None,
                status="failed",
                last_built_at=servable.last_built_at if servable else None,
                last_error=reason,
                build_count=previous.build_count if previous else 0,
            ))
            self.health.record_build(pid, ok=False, error=reason)
            return Failed(reason=reason, previous=servable)

        state = ProjectIndexState(
            project_id=pid,
            project_title=project.title,
            lexical=lexical,
            semantic_handle=handle,
            status="ready",
            last_built_at=datetime.now(timezone.utc),
            build_count=(previous.build_count if previous else 0) + 1,
        )
        with self._lock:
            replaced = self._states.get(pid)
            self._states[pid] = state
            to_release = self._retired.pop(pid, [])
            old_handle = replaced.semantic_handle if replaced else None
            if old_handle is not None and old_handle != handle:
                if purge:
                    to_release.append(old_handle)
                else:
                    # readers holding the replaced snapshot may still query it
                    self._retired[pid] = [old_handle]
        self._release(to_release)

        logger.info(
            "[%s] Index ready: %d chunks, %d unique terms",
            pid, len(chunks), len(lexical.term_doc_frequency),
        )
        self.health.record_build(pid, ok=True, chunks=len(chunks))
        return Ready(state=state)

    def _build_sides(self, project: Project):
        pid = project.id
        try:
            chunks = self.chunker.chunk_project(project)
        except Exception as e:
            raise BuildFailure(pid, "chunking", e) from e
        try:
            lexical = LexicalIndex.build(chunks, self.lexical_settings)
        except Exception as e:
            raise BuildFailure(pid, "lexical index", e) from e
        try:
            handle = self.semantic.rebuild(pid, chunks)
        except Exception as e:
            raise BuildFailure(pid, "semantic index", e) from e
        return chunks, lexical, handle

    def _clear_semantic(self, project_id: str):
        try:
            self.semantic.clear(project_id)
        except Exception as e:
            logger.warning("[%s] Semantic clear failed: %s", project_id, e)

    def clear_index(self, project_id: str) -> bool:
        """Discard both sides. Returns False if nothing was indexed."""
        _validate_project_id(project_id)
        with self._build_lock(project_id):
            return self._clear_locked(project_id)

    def _clear_locked(self, project_id: str) -> bool:
        with self._lock:
            removed = self._states.pop(project_id, None)
            self._retired.pop(project_id, None)
        self._clear_semantic(project_id)
        if removed is not None:
            logger.info("[%s] Index cleared", project_id)
        return removed is not None

    def force_reinitialize(self, project_id: str) -> BuildOutcome:
        """Rebuild from the page source regardless of current status and drop
        every older semantic generation once the new one is live."""
        self.require_project(project_id)
        logger.info("[%s] Force reinitializing hybrid index", project_id)
        with self._build_lock(project_id):
            return self._build(self._current_project(project_id), purge=True)

    def mark_stale(self, project_id: str):
        with self._lock:
            state = self._states.get(project_id)
            if state is not None and state.status == "ready":
                self._states[project_id] = replace(state, status="stale")

    # ── Content-change hooks ─────────────────────────────

    def handle_page_change(self, project_id: str) -> Optional[BuildOutcome]:
        """Page created/updated/deleted: rebuild, or clear if nothing is left."""
        _validate_project_id(project_id)
        self.mark_stale(project_id)
        with self._build_lock(project_id):
            project = self.store.get(project_id)
            if project is None or not project.pages:
                self._clear_locked(project_id)
                return None
            return self._build(project)

    def handle_project_deleted(self, project_id: str):
        self.clear_index(project_id)
        with self._lock:
            self._build_locks.pop(project_id, None)

    def on_content_change(self, kind: ChangeKind, project_id: str):
        """ProjectStore listener."""
        if kind == "project_deleted":
            self.handle_project_deleted(project_id)
        else:
            self.handle_page_change(project_id)

    def rebuild_all(self) -> dict:
        """Rebuild every project in the store, skipping projects without pages."""
        details = []
        errors = []
        for project in self.store.all():
            if not project.pages:
                details.append({
                    "projectId": project.id,
                    "projectTitle": project.title,
                    "status": "skipped",
                    "reason": "No content to index",
                    "pages": 0,
                })
                continue
            started = datetime.now(timezone.utc)
            try:
                outcome = self.create_or_update_index(project)
            except ProjectNotFound:
                # deleted while the rebuild was running
                continue
            duration_ms = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)
            entry = {
                "projectId": project.id,
                "projectTitle": project.title,
                "status": "success" if outcome.ok else "failed",
                "pages": len(project.pages),
                "duration": duration_ms,
            }
            if isinstance(outcome, Failed):
                entry["error"] = outcome.reason
                errors.append({
                    "projectId": project.id,
                    "projectTitle": project.title,
                    "error": outcome.reason,
                })
            details.append(entry)
        successful = sum(1 for d in details if d["status"] == "success")
        return {
            "total": len(details),
            "successful": successful,
            "failed": len(errors),
            "errors": errors,
            "details": details,
        }

    # ── Queries ──────────────────────────────────────────

    def search(self, query: HybridQuery) -> RetrievalResult:
        state = self.get_state(query.project_id)
        result = self.retriever.search(state, query)
        self.health.record_search(
            hit=result.hit, degraded=result.degraded, available=result.index_available,
        )
        return result

    def lexical_search(self, project_id: str, query_text: str, k: int) -> list[ScoredChunk]:
        state = self.get_state(_validate_project_id(project_id))
        if state is None:
            return []
        return self.retriever.lexical_search(state, query_text, k)

    def semantic_search(self, project_id: str, query_text: str, k: int) -> list[ScoredChunk]:
        """Semantic-only hits; adapter errors yield an empty list."""
        state = self.get_state(_validate_project_id(project_id))
        if state is None:
            return []
        try:
            return self.retriever.semantic_search(state, query_text, k)
        except AdapterFailure as e:
            logger.warning("[%s] %s", project_id, e)
            return []

    # ── Stats ────────────────────────────────────────────

    def get_stats(self, project_id: str) -> IndexStats:
        state = self.get_state(_validate_project_id(project_id))
        if state is None:
            return IndexStats(project_id=project_id, status="absent")
        lexical = state.lexical
        handle = state.semantic_handle
        return IndexStats(
            project_id=project_id,
            status=state.status,
            chunk_count=len(lexical) if lexical is not None else 0,
            unique_terms=len(lexical.term_doc_frequency) if lexical is not None else 0,
            average_chunk_length=lexical.avg_doc_length if lexical is not None else 0.0,
            semantic_chunk_count=handle.chunk_count if handle is not None else 0,
            last_built_at=state.last_built_at,
            last_error=state.last_error,
            build_count=state.build_count,
            has_lexical=lexical is not None,
            has_semantic=handle is not None,
        )
