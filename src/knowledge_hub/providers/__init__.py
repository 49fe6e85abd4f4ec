"""Provider selection driven by ``KB_PROVIDER_MODE``."""

from __future__ import annotations

import logging

from knowledge_hub.config import ProviderSettings
from knowledge_hub.providers.text import MockTextModel, OpenAITextModel, TextModel
from knowledge_hub.providers.web import (
    BingSearchProvider,
    SimulatedSearchProvider,
    WebSearchProvider,
)

logger = logging.getLogger(__name__)

__all__ = [
    "TextModel",
    "WebSearchProvider",
    "build_search_provider",
    "build_text_model",
]


def build_text_model(settings: ProviderSettings) -> TextModel:
    if not settings.use_live(settings.openai_api_key):
        logger.info("Generation provider: mock (mode=%s)", settings.mode)
        return MockTextModel()
    if not settings.openai_api_key:
        raise RuntimeError("OPENAI_API_KEY is required when KB_PROVIDER_MODE=live")
    logger.info("Generation provider: openai model=%s", settings.openai_model)
    return OpenAITextModel(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
    )


def build_search_provider(settings: ProviderSettings) -> WebSearchProvider:
    if not settings.use_live(settings.bing_api_key):
        logger.info("Search provider: simulated (mode=%s)", settings.mode)
        return SimulatedSearchProvider()
    if not settings.bing_api_key:
        raise RuntimeError("BING_SEARCH_API_KEY is required when KB_PROVIDER_MODE=live")
    logger.info("Search provider: bing")
    return BingSearchProvider(
        api_key=settings.bing_api_key,
        endpoint=settings.bing_endpoint,
        timeout=settings.fetch_timeout_seconds,
    )
