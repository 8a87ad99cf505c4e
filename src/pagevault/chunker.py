# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Pages -> Paragraphs -> Chunks

Paragraphs (blank-line separated) become one chunk each; paragraphs longer
than chunk_max_chars are subdivided with overlap, preferring sentence breaks.

Chunk IDs are content-based (sha256 of page id + position + text) so they
are stable across rebuilds as long as the page content is unchanged.
"""
import hashlib
import re

from .config import Config
from .models import Chunk, ChunkMetadata, Page, Project


def make_chunk_id(page_id: str, chunk_index: int, text: str) -> str:
    content = f"{page_id}\n{chunk_index}\n{text}"
    return hashlib.sha256(content.encode()).hexdigest()[:16]


def normalize_content(content: str) -> str:
    text = content.replace("\r\n", "\n")
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def split_fixed_size(text: str, max_chars: int, overlap: int) -> list[str]:
    """Fixed-size windows with overlap, cut at the last '. ' when it is past
    the halfway mark."""
    if len(text) <= max_chars:
        return [text]
    pieces = []
    start = 0
    while start < len(text):
        end = start + max_chars
        piece = text[start:end]

        if end < len(text):
            last_period = piece.rfind(". ")
            if last_period > max_chars * 0.5:
                piece = piece[: last_period + 1]
                end = start + last_period + 1

        piece = piece.strip()
        if piece:
            pieces.append(piece)
        if end >= len(text):
            break
        start = max(end - overlap, start + 1)
    return pieces


class PageChunker:
    def __init__(self, config: Config):
        self.max_chars = config.chunk_max_chars
        self.overlap = min(config.chunk_overlap, max(config.chunk_max_chars - 1, 0))

    def chunk_page(self, project_id: str, page: Page) -> list[Chunk]:
        chunks: list[Chunk] = []
        for paragraph in normalize_content(page.content or "").split("\n\n"):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            for text in split_fixed_size(paragraph, self.max_chars, self.overlap):
                index = len(chunks)
                chunks.append(Chunk(
                    id=make_chunk_id(page.id, index, text),
                    text=text,
                    metadata=ChunkMetadata(
                        project_id=project_id,
                        page_id=page.id,
                        page_title=page.title,
                        chunk_index=index,
                    ),
                ))
        return chunks

    def chunk_project(self, project: Project) -> list[Chunk]:
        """All chunks of a project, page order preserved, duplicate ids dropped."""
        seen: set[str] = set()
        out: list[Chunk] = []
        for page in project.pages:
            for chunk in self.chunk_page(project.id, page):
                if chunk.id in seen:
                    continue
                seen.add(chunk.id)
                out.append(chunk)
        return out
