import hashlib
import math
import threading
import time

import pytest

from pagevault.config import Config
from pagevault.health import HealthTracker
from pagevault.manager import ProjectIndexRegistry
from pagevault.models import Chunk, Page, Project, ScoredChunk
from pagevault.semantic import SemanticHandle
from pagevault.store import ProjectStore
from pagevault.tokenizer import tokenize

EMBED_DIM = 64


def hash_embed(texts):
    """Deterministic bag-of-words embedding, no model download."""
    vectors = []
    for text in texts:
        vec = [0.0] * EMBED_DIM
        vec[0] = 0.1
        for term in tokenize(text):
            bucket = int(hashlib.md5(term.encode()).hexdigest(), 16) % (EMBED_DIM - 1) + 1
            vec[bucket] += 1.0
        norm = math.sqrt(sum(x * x for x in vec))
        vectors.append([x / norm for x in vec])
    return vectors


def _cosine(a, b):
    return sum(x * y for x, y in zip(a, b))


class FakeSemanticIndex:
    """In-memory SemanticIndex with switchable failures."""

    def __init__(self):
        self.generations: dict[str, list[tuple[Chunk, list[float]]]] = {}
        self.released: list[str] = []
        self.cleared: list[str] = []
        self.fail_rebuild = False
        self.fail_search = False
        self.search_delay = 0.0
        self.rebuild_delay = 0.0
        self.rebuild_calls = 0
        self._counter = 0
        self._lock = threading.Lock()

    def rebuild(self, project_id, chunks):
        with self._lock:
            self.rebuild_calls += 1
            self._counter += 1
            name = f"{project_id}_g{self._counter}"
        if self.rebuild_delay:
            time.sleep(self.rebuild_delay)
        if self.fail_rebuild:
            raise RuntimeError("embedding service unreachable")
        vectors = hash_embed([c.text for c in chunks])
        with self._lock:
            self.generations[name] = list(zip(chunks, vectors))
        return SemanticHandle(project_id=project_id, collection_name=name, chunk_count=len(chunks))

    def search(self, handle, query_text, k):
        if self.search_delay:
            time.sleep(self.search_delay)
        if self.fail_search:
            raise ConnectionError("vector store down")
        with self._lock:
            entries = self.generations[handle.collection_name]
        q = hash_embed([query_text])[0]
        ranked = sorted(entries, key=lambda e: _cosine(q, e[1]), reverse=True)[:k]
        return [
            ScoredChunk(chunk=c, score=_cosine(q, v), source="semantic", semantic_rank=i)
            for i, (c, v) in enumerate(ranked)
        ]

    def release(self, handle):
        with self._lock:
            self.generations.pop(handle.collection_name, None)
            self.released.append(handle.collection_name)

    def clear(self, project_id):
        with self._lock:
            for name in [n for n in self.generations if n.startswith(f"{project_id}_g")]:
                del self.generations[name]
            self.cleared.append(project_id)


BUDGET_PAGE = Page(
    id="p-budget", title="Budget",
    content="Q3 revenue targets and budget allocation",
)
RECIPES_PAGE = Page(
    id="p-recipes", title="Recipes",
    content="pasta and tomato sauce recipe",
)
NOTES_PAGE = Page(
    id="p-notes", title="Meeting Notes",
    content=(
        "Kickoff meeting with the marketing team.\n\n"
        "Action items: finalize the launch budget and hire a designer.\n\n"
        "Next meeting scheduled for Friday."
    ),
)


@pytest.fixture
def config(tmp_path):
    return Config(
        data_path=str(tmp_path),
        vectorstore_path=str(tmp_path / "vectorstore"),
        projects_file=str(tmp_path / "projects.json"),
        build_on_startup=False,
        semantic_timeout=5.0,
    )


@pytest.fixture
def health():
    return HealthTracker()


@pytest.fixture
def project():
    return Project(id="alpha", title="Alpha", pages=(BUDGET_PAGE, RECIPES_PAGE, NOTES_PAGE))


@pytest.fixture
def store(config, project):
    s = ProjectStore(config.projects_file)
    s.put_project(project, notify=False)
    return s


@pytest.fixture
def semantic():
    return FakeSemanticIndex()


@pytest.fixture
def registry(config, store, semantic, health):
    reg = ProjectIndexRegistry(config, store, semantic, health)
    yield reg
    reg.close()


@pytest.fixture
def embed_fn():
    return hash_embed
