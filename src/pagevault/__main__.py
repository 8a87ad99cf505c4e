# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Entry point: python -m pagevault

Loads config and projects, optionally builds every project index, then
serves the HTTP API.
"""
import logging

import uvicorn

from .config import Config
from .health import HealthTracker
from .logging_utils import setup_logging
from .manager import ProjectIndexRegistry
from .semantic import ChromaSemanticIndex
from .store import ProjectStore
from .web import create_web_app

logger = logging.getLogger("pagevault")


def main():
    config = Config.load()
    setup_logging(config.log_level, json_logs=config.json_logs)

    health = HealthTracker()
    store = ProjectStore.load(config.projects_file)
    semantic = ChromaSemanticIndex(config)
    registry = ProjectIndexRegistry(config, store, semantic, health)
    store.subscribe(registry.on_content_change)

    if config.build_on_startup and len(store):
        logger.info("Initial indexing of %d projects ...", len(store))
        summary = registry.rebuild_all()
        logger.info(
            "Initial indexing done: %d ok, %d failed, %d total",
            summary["successful"], summary["failed"], summary["total"],
        )

    web_app = create_web_app(config, registry, health)
    logger.info("HTTP API on http://%s:%d", config.web_host, config.web_port)
    try:
        uvicorn.run(web_app, host=config.web_host, port=config.web_port, log_level="warning")
    finally:
        registry.close()


if __name__ == "__main__":
    main()
