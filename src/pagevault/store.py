# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Minimal page source: projects and their pages, held in memory and
persisted to projects.json. Page CRUD proper lives elsewhere; this is the
boundary the index registry reads from and the place content-change
notifications come from.
"""
import json
import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Literal, Optional

from pydantic import BaseModel, ValidationError

from .models import Page, Project

logger = logging.getLogger(__name__)

ChangeKind = Literal["page_changed", "page_deleted", "project_deleted"]
ChangeListener = Callable[[ChangeKind, str], None]


class PageRecord(BaseModel):
    id: str
    title: str = ""
    content: str = ""


class ProjectRecord(BaseModel):
    """On-disk shape of one project in projects.json."""
    id: str
    title: str = ""
    pages: list[PageRecord] = []

    def to_project(self) -> Project:
        return Project(
            id=self.id,
            title=self.title or self.id,
            pages=tuple(Page(id=p.id, title=p.title, content=p.content) for p in self.pages),
        )

    @classmethod
    def from_project(cls, project: Project) -> "ProjectRecord":
        return cls(
            id=project.id,
            title=project.title,
            pages=[PageRecord(id=p.id, title=p.title, content=p.content) for p in project.pages],
        )


class ProjectStore:
    def __init__(self, path: Optional[str] = None):
        self._path = Path(path) if path else None
        self._projects: dict[str, Project] = {}
        self._lock = threading.Lock()
        self._listeners: list[ChangeListener] = []

    # ── Reads ────────────────────────────────────────────

    def get(self, project_id: str) -> Optional[Project]:
        with self._lock:
            return self._projects.get(project_id)

    def all(self) -> list[Project]:
        with self._lock:
            return list(self._projects.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._projects)

    # ── Writes ───────────────────────────────────────────

    def subscribe(self, listener: ChangeListener):
        self._listeners.append(listener)

    def _notify(self, kind: ChangeKind, project_id: str):
        for listener in list(self._listeners):
            listener(kind, project_id)

    def put_project(self, project: Project, notify: bool = True):
        with self._lock:
            self._projects[project.id] = project
        if notify:
            self._notify("page_changed", project.id)

    def put_page(self, project_id: str, page: Page):
        """Create or replace a page (matched by id)."""
        with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                raise KeyError(project_id)
            pages = [p for p in project.pages if p.id != page.id]
            existing = [p.id for p in project.pages]
            if page.id in existing:
                pages.insert(existing.index(page.id), page)
            else:
                pages.append(page)
            self._projects[project_id] = replace(project, pages=tuple(pages))
        self._notify("page_changed", project_id)

    def delete_page(self, project_id: str, page_id: str) -> bool:
        with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                return False
            pages = tuple(p for p in project.pages if p.id != page_id)
            if len(pages) == len(project.pages):
                return False
            self._projects[project_id] = replace(project, pages=pages)
        self._notify("page_deleted", project_id)
        return True

    def delete_project(self, project_id: str) -> bool:
        with self._lock:
            removed = self._projects.pop(project_id, None)
        if removed is None:
            return False
        self._notify("project_deleted", project_id)
        return True

    # ── Persistence ──────────────────────────────────────

    def save(self):
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        records = [ProjectRecord.from_project(p).model_dump() for p in self.all()]
        self._path.write_text(json.dumps(records, indent=2))

    @classmethod
    def load(cls, path: str) -> "ProjectStore":
        store = cls(path)
        file = Path(path)
        if not file.exists():
            return store
        try:
            raw = json.loads(file.read_text())
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s: %s", file, e)
            return store
        for item in raw:
            try:
                project = ProjectRecord(**item).to_project()
            except (ValidationError, TypeError) as e:
                logger.warning("Skipping invalid project entry in %s: %s", file, e)
                continue
            store.put_project(project, notify=False)
        logger.info("Loaded %d projects from %s", len(store), file)
        return store
