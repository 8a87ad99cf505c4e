# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Core records shared by the indices, the fusion ranker and the registry.

Runtime records are plain dataclasses; request/response bodies live in
web.py as pydantic models.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Literal, Optional, Union

from .errors import InputError

if TYPE_CHECKING:
    from .lexical import LexicalIndex
    from .semantic import SemanticHandle

Source = Literal["lexical", "semantic", "hybrid"]
IndexStatus = Literal["absent", "building", "ready", "stale", "failed"]
MetadataValue = Union[str, int, float, bool]


# ── Collaborator records (project / page source) ─────


@dataclass(frozen=True)
class Page:
    id: str
    title: str
    content: str = ""


@dataclass(frozen=True)
class Project:
    id: str
    title: str
    pages: tuple[Page, ...] = ()


# ── Chunks ───────────────────────────────────────────


@dataclass(frozen=True)
class ChunkMetadata:
    project_id: str
    page_id: str
    page_title: str
    chunk_index: int
    extra: dict[str, MetadataValue] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = {
            "projectId": self.project_id,
            "pageId": self.page_id,
            "pageTitle": self.page_title,
            "chunkIndex": self.chunk_index,
        }
        d.update(self.extra)
        return d


@dataclass(frozen=True)
class Chunk:
    id: str
    text: str
    metadata: ChunkMetadata


@dataclass(frozen=True)
class ScoredChunk:
    chunk: Chunk
    score: float
    source: Source
    lexical_rank: Optional[int] = None
    semantic_rank: Optional[int] = None

    @property
    def id(self) -> str:
        return self.chunk.id

    @property
    def text(self) -> str:
        return self.chunk.text

    @property
    def page_title(self) -> str:
        return self.chunk.metadata.page_title


# ── Query inputs ─────────────────────────────────────


@dataclass(frozen=True)
class Weights:
    semantic: float = 0.7
    keyword: float = 0.3

    @classmethod
    def parse(cls, semantic, keyword) -> "Weights":
        """Validate caller weights and re-normalize them to sum to 1.0."""
        values = {}
        for name, raw in (("semantic", semantic), ("keyword", keyword)):
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                raise InputError(f"weights.{name} must be a number, got {raw!r}")
            value = float(raw)
            if math.isnan(value) or not 0.0 <= value <= 1.0:
                raise InputError(f"weights.{name} must be within [0, 1], got {raw!r}")
            values[name] = value
        total = values["semantic"] + values["keyword"]
        if total <= 0:
            raise InputError("weights.semantic + weights.keyword must be > 0")
        return cls(semantic=values["semantic"] / total, keyword=values["keyword"] / total)

    def to_dict(self) -> dict:
        return {"semantic": self.semantic, "keyword": self.keyword}


@dataclass(frozen=True)
class HybridQuery:
    project_id: str
    query_text: str
    k: int = 5
    weights: Weights = field(default_factory=Weights)

    def __post_init__(self):
        if not isinstance(self.project_id, str) or not self.project_id.strip():
            raise InputError("project id is required")
        if not isinstance(self.query_text, str):
            raise InputError("query must be a string")
        if isinstance(self.k, bool) or not isinstance(self.k, int) or self.k < 1:
            raise InputError(f"k must be a positive integer, got {self.k!r}")


# ── Index lifecycle ──────────────────────────────────


@dataclass(frozen=True)
class ProjectIndexState:
    """Immutable snapshot; the registry swaps whole objects, never fields."""
    project_id: str
    project_title: str = ""
    lexical: Optional["LexicalIndex"] = None
    semantic_handle: Optional["SemanticHandle"] = None
    status: IndexStatus = "absent"
    last_built_at: Optional[datetime] = None
    last_error: Optional[str] = None
    build_count: int = 0

    @property
    def is_servable(self) -> bool:
        return self.lexical is not None or self.semantic_handle is not None


@dataclass(frozen=True)
class Ready:
    state: ProjectIndexState
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Failed:
    reason: str
    previous: Optional[ProjectIndexState]
    ok: bool = field(default=False, init=False)


BuildOutcome = Union[Ready, Failed]


@dataclass(frozen=True)
class IndexStats:
    project_id: str
    status: IndexStatus
    chunk_count: int = 0
    unique_terms: int = 0
    average_chunk_length: float = 0.0
    semantic_chunk_count: int = 0
    last_built_at: Optional[datetime] = None
    last_error: Optional[str] = None
    build_count: int = 0
    has_lexical: bool = False
    has_semantic: bool = False

    def to_dict(self) -> dict:
        return {
            "projectId": self.project_id,
            "status": self.status,
            "initialized": self.has_lexical or self.has_semantic,
            "chunkCount": self.chunk_count,
            "uniqueTerms": self.unique_terms,
            "averageChunkLength": round(self.average_chunk_length, 2),
            "semanticChunkCount": self.semantic_chunk_count,
            "lastBuiltAt": self.last_built_at.isoformat() if self.last_built_at else None,
            "lastError": self.last_error,
            "buildCount": self.build_count,
            "hasLexical": self.has_lexical,
            "hasSemantic": self.has_semantic,
        }
