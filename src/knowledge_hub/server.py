"""Entrypoint for the knowledge hub services."""

from __future__ import annotations

import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # pragma: no cover

from knowledge_hub import __version__
from knowledge_hub.config import load_settings
from knowledge_hub.logging_utils import configure_logging, get_logger


def run_entrypoint() -> None:
    """Run the service selected by ``KB_SERVICE`` under uvicorn."""
    settings = load_settings()
    configure_logging(settings.server.service)
    logger = get_logger(__name__)

    import uvicorn

    from knowledge_hub.app import create_app, get_app_context

    context = get_app_context()
    service = settings.server.service
    logger.info("Starting knowledge hub %s service v%s", service, __version__)
    logger.info("SQLite store at %s", context.store.path)

    app = create_app(service, context)
    try:
        uvicorn.run(
            app,
            host=settings.server.host,
            port=settings.server.port,
            ws="none",
            log_config=None,
        )
    finally:
        context.store.close()


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
