# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Centralized health/status tracker – shared across registry and web API.
Thread-safe, no external dependencies.
"""
import threading
from datetime import datetime, timezone


class HealthTracker:
    def __init__(self):
        self._lock = threading.Lock()
        self._data = {
            "started_at": datetime.now(timezone.utc).isoformat(),

            "last_build_at": None,
            "last_build_ok": False,
            "last_build_project": None,
            "last_build_chunks": 0,
            "last_build_error": None,
            "builds_total": 0,
            "builds_failed": 0,

            "searches_total": 0,
            "searches_hits": 0,
            "searches_misses": 0,
            "searches_degraded": 0,
            "searches_unavailable": 0,
            "last_search_at": None,
        }

    def record_build(self, project_id: str, ok: bool, chunks: int = 0, error: str | None = None):
        with self._lock:
            self._data["last_build_at"] = datetime.now(timezone.utc).isoformat()
            self._data["last_build_ok"] = ok
            self._data["last_build_project"] = project_id
            self._data["last_build_chunks"] = chunks
            self._data["last_build_error"] = error
            self._data["builds_total"] += 1
            if not ok:
                self._data["builds_failed"] += 1

    def record_search(self, hit: bool, degraded: bool = False, available: bool = True):
        with self._lock:
            self._data["searches_total"] += 1
            if hit:
                self._data["searches_hits"] += 1
            else:
                self._data["searches_misses"] += 1
            if degraded:
                self._data["searches_degraded"] += 1
            if not available:
                self._data["searches_unavailable"] += 1
            self._data["last_search_at"] = datetime.now(timezone.utc).isoformat()

    @property
    def status(self) -> dict:
        with self._lock:
            return dict(self._data)

    @property
    def is_healthy(self) -> bool:
        """Healthy until a build fails; a later good build clears it."""
        with self._lock:
            return self._data["builds_total"] == 0 or self._data["last_build_ok"]
