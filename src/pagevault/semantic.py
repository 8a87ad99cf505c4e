# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Semantic side: Chunks -> Vector Embeddings -> ChromaDB

Every rebuild writes a new generation (its own collection) and returns a
handle to it. The live generation keeps serving until the registry swaps
handles, after which the old one is released. Nothing here is shared
between projects except the client and the embedding function.
"""
import hashlib
import logging
import re
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

import chromadb
from chromadb.utils import embedding_functions

from .config import Config
from .models import Chunk, ChunkMetadata, ScoredChunk

logger = logging.getLogger(__name__)

EmbeddingFunction = Callable[[list[str]], Sequence[Sequence[float]]]

_RESERVED_KEYS = {"projectId", "pageId", "pageTitle", "chunkIndex"}
_BATCH_SIZE = 5000


@dataclass(frozen=True)
class SemanticHandle:
    """Opaque reference to one built generation of a project's vectors."""
    project_id: str
    collection_name: str
    chunk_count: int


class SemanticIndex(Protocol):
    def rebuild(self, project_id: str, chunks: Sequence[Chunk]) -> SemanticHandle: ...

    def search(self, handle: SemanticHandle, query_text: str, k: int) -> list[ScoredChunk]: ...

    def release(self, handle: SemanticHandle) -> None: ...

    def clear(self, project_id: str) -> None: ...


def make_embedding_function(config: Config):
    """Embedding function for the configured provider."""
    if config.embedding_provider == "local":
        return embedding_functions.SentenceTransformerEmbeddingFunction(
            model_name=config.embedding_model
        )
    return embedding_functions.OpenAIEmbeddingFunction(
        api_key=config.openai_api_key,
        model_name=config.openai_embedding_model,
    )


def _slug(text: str) -> str:
    """Safe slug for collection names (a-z, 0-9, underscore)."""
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")[:32]


def collection_prefix(project_id: str) -> str:
    digest = hashlib.sha1(project_id.encode()).hexdigest()[:8]
    return f"proj_{_slug(project_id) or 'x'}_{digest}"


def _metadata_for_store(meta: ChunkMetadata) -> dict:
    return {k: v for k, v in meta.to_dict().items() if v is not None}


def _metadata_from_store(raw: dict) -> ChunkMetadata:
    raw = raw or {}
    return ChunkMetadata(
        project_id=str(raw.get("projectId", "")),
        page_id=str(raw.get("pageId", "")),
        page_title=str(raw.get("pageTitle", "")),
        chunk_index=int(raw.get("chunkIndex", 0)),
        extra={k: v for k, v in raw.items() if k not in _RESERVED_KEYS},
    )


class ChromaSemanticIndex:
    """SemanticIndex backed by ChromaDB collections (cosine space)."""

    def __init__(self, config: Config, embedding_fn: EmbeddingFunction | None = None,
                 client=None):
        self.config = config
        self.chroma = client if client is not None else chromadb.PersistentClient(
            path=config.vectorstore_path
        )
        self._ef = embedding_fn
        self._ef_lock = threading.Lock()
        self._collections: dict[str, object] = {}
        self._collections_lock = threading.Lock()

    @property
    def ef(self) -> EmbeddingFunction:
        """Lazy-load the embedding model on first use."""
        with self._ef_lock:
            if self._ef is None:
                logger.info(
                    "Loading embedding model '%s' (%s)",
                    self.config.active_embedding_model, self.config.embedding_provider,
                )
                self._ef = make_embedding_function(self.config)
            return self._ef

    def _embed(self, texts: list[str]) -> list[list[float]]:
        return [[float(x) for x in vec] for vec in self.ef(texts)]

    # ── Lifecycle ────────────────────────────────────────

    def rebuild(self, project_id: str, chunks: Sequence[Chunk]) -> SemanticHandle:
        name = f"{collection_prefix(project_id)}_{uuid.uuid4().hex[:8]}"
        collection = self.chroma.create_collection(
            name,
            embedding_function=None,
            metadata={"hnsw:space": "cosine", "project_id": project_id},
        )
        with self._collections_lock:
            self._collections[name] = collection
        try:
            for i in range(0, len(chunks), _BATCH_SIZE):
                batch = list(chunks[i : i + _BATCH_SIZE])
                collection.upsert(
                    ids=[c.id for c in batch],
                    documents=[c.text for c in batch],
                    metadatas=[_metadata_for_store(c.metadata) for c in batch],
                    embeddings=self._embed([c.text for c in batch]),
                )
        except Exception:
            self._delete_collection(name)
            raise
        logger.info(
            "Semantic generation '%s' built: %d chunks", name, len(chunks),
        )
        return SemanticHandle(project_id=project_id, collection_name=name,
                              chunk_count=len(chunks))

    def release(self, handle: SemanticHandle) -> None:
        self._delete_collection(handle.collection_name)

    def clear(self, project_id: str) -> None:
        """Drop every generation of the project, including orphans left by
        earlier processes."""
        prefix = collection_prefix(project_id) + "_"
        for name in self._collection_names():
            if name.startswith(prefix):
                self._delete_collection(name)

    def _collection_names(self) -> list[str]:
        return [getattr(c, "name", c) for c in self.chroma.list_collections()]

    def _get_collection(self, name: str):
        with self._collections_lock:
            collection = self._collections.get(name)
        if collection is None:
            collection = self.chroma.get_collection(name, embedding_function=None)
            with self._collections_lock:
                self._collections[name] = collection
        return collection

    def _delete_collection(self, name: str):
        with self._collections_lock:
            self._collections.pop(name, None)
        try:
            self.chroma.delete_collection(name)
        except Exception as e:
            # already gone (released twice or cleared concurrently)
            logger.debug("delete_collection(%s) ignored: %s", name, e)

    # ── Search ───────────────────────────────────────────

    def search(self, handle: SemanticHandle, query_text: str, k: int) -> list[ScoredChunk]:
        """Top-k chunks by cosine similarity, descending."""
        if k <= 0 or handle.chunk_count == 0 or not query_text.strip():
            return []
        collection = self._get_collection(handle.collection_name)
        results = collection.query(
            query_embeddings=self._embed([query_text]),
            n_results=min(k, handle.chunk_count),
            include=["documents", "metadatas", "distances"],
        )
        if not results["ids"] or not results["ids"][0]:
            return []
        hits = []
        for rank, (cid, doc, meta, dist) in enumerate(zip(
            results["ids"][0],
            results["documents"][0],
            results["metadatas"][0],
            results["distances"][0],
        )):
            hits.append(ScoredChunk(
                chunk=Chunk(id=cid, text=doc or "", metadata=_metadata_from_store(meta)),
                score=1.0 - float(dist),
                source="semantic",
                semantic_rank=rank,
            ))
        return hits
