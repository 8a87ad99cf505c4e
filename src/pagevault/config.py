# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Central configuration – configurable via:
1. Environment variables (PAGEVAULT_ prefix)
2. .env file
3. /data/config.json (operator overrides)
"""
import json
import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

CONFIG_FILE = Path("/data/config.json")


class Config(BaseSettings):
    # ── Storage ──────────────────────────────────
    data_path: str = "/data"
    vectorstore_path: str = "/data/vectorstore"
    projects_file: str = "/data/projects.json"

    # ── Embeddings ───────────────────────────────
    embedding_provider: Literal["local", "openai"] = "local"
    embedding_model: str = "all-MiniLM-L6-v2"
    openai_api_key: str = ""
    openai_embedding_model: str = "text-embedding-3-small"

    # ── Chunking ─────────────────────────────────
    chunk_max_chars: int = 500
    chunk_overlap: int = 50

    # ── Lexical ranking (BM25) ───────────────────
    bm25_k1: float = 1.2
    bm25_b: float = 0.75
    idf_floor: Optional[float] = 0.01
    min_threshold: float = 0.1
    max_score_ratio: float = 0.2
    avg_score_ratio: float = 0.5
    fallback_top_n: int = 2

    # ── Hybrid search ────────────────────────────
    semantic_weight: float = 0.7
    keyword_weight: float = 0.3
    default_top_k: int = 5
    fetch_multiplier: int = 3
    fetch_min: int = 15
    semantic_timeout: float = 30.0
    preview_chars: int = 150

    # ── Server ───────────────────────────────────
    web_host: str = "0.0.0.0"
    web_port: int = 8080
    build_on_startup: bool = True

    # ── Logging ──────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool = False

    class Config:
        env_prefix = "PAGEVAULT_"
        env_file = ".env"

    @classmethod
    def load(cls) -> "Config":
        """Load config: ENV -> .env -> config.json overrides."""
        config = cls()

        if CONFIG_FILE.exists():
            try:
                overrides = json.loads(CONFIG_FILE.read_text())
                for key, value in overrides.items():
                    if hasattr(config, key) and value != "":
                        setattr(config, key, value)
            except (OSError, ValueError) as e:
                logger.warning("Config file error: %s", e)

        return config

    @property
    def active_embedding_model(self) -> str:
        if self.embedding_provider == "local":
            return self.embedding_model
        return self.openai_embedding_model

    def fetch_size(self, k: int) -> int:
        """Candidates pulled from each side before fusion."""
        return max(k * self.fetch_multiplier, self.fetch_min)

    def to_safe_dict(self) -> dict:
        """Config without secrets (for /health and diagnostics)."""
        d = self.model_dump()
        if d.get("openai_api_key"):
            d["openai_api_key"] = d["openai_api_key"][:8] + "..."
        return d
