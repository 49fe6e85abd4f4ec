"""Text generation backend: completion, classification, extraction and summaries."""

from __future__ import annotations

from starlette.applications import Starlette

from knowledge_hub.backends.base import ToolSpec, create_backend_app
from knowledge_hub.extraction import Extractor, PatternExtractor
from knowledge_hub.providers.text import TextModel
from knowledge_hub.utils.jsonschema import object_schema

SERVICE_NAME = "generation"

SUMMARY_LENGTHS = ("short", "medium", "long")


def generation_tools(model: TextModel, extractor: Extractor) -> list[ToolSpec]:
    async def generate(params: dict[str, object]) -> dict[str, object]:
        max_tokens = int(params.get("max_tokens", 1000))  # type: ignore[call-overload]
        temperature = float(params.get("temperature", 0.7))  # type: ignore[arg-type]
        text = await model.generate(str(params["prompt"]), max_tokens, temperature)
        return {
            "model": model.name,
            "response": text,
            "metadata": {
                "tokens_used": len(text.split()),
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
        }

    async def classify(params: dict[str, object]) -> dict[str, object]:
        classification = await model.classify(
            str(params["content"]),
            params.get("context"),  # type: ignore[arg-type]
            params.get("categories"),  # type: ignore[arg-type]
        )
        return {"model": model.name, "classification": classification}

    async def extract_entities(params: dict[str, object]) -> dict[str, object]:
        result = extractor.extract(str(params["text"]))
        return {
            "entities": [entity.to_dict() for entity in result.entities],
            "relationships": [rel.to_dict() for rel in result.relationships],
            "count": len(result.entities),
        }

    async def synthesize_insights(params: dict[str, object]) -> dict[str, object]:
        related = list(params.get("related_content") or [])  # type: ignore[call-overload]
        insights = await model.synthesize_insights(str(params["content"]), related)
        return {"model": model.name, "insights": insights, "related_count": len(related)}

    async def generate_summary(params: dict[str, object]) -> dict[str, object]:
        length = str(params.get("length") or "medium")
        summary = await model.summarize(str(params["content"]), length)
        return {"model": model.name, "summary": summary, "length": length}

    return [
        ToolSpec(
            name="generate",
            description="Generate a completion for a prompt",
            method="POST",
            path="/tools/generate",
            input_schema=object_schema(
                {
                    "prompt": {"type": "string", "minLength": 1},
                    "max_tokens": {"type": "integer", "minimum": 1, "maximum": 8192},
                    "temperature": {"type": "number", "minimum": 0, "maximum": 2},
                },
                required=("prompt",),
            ),
            handler=generate,
        ),
        ToolSpec(
            name="classify",
            description="Classify content into a category with tags",
            method="POST",
            path="/tools/classify",
            input_schema=object_schema(
                {
                    "content": {"type": "string", "minLength": 1},
                    "context": {"type": ["string", "null"]},
                    "categories": {"type": ["array", "null"], "items": {"type": "string"}},
                },
                required=("content",),
            ),
            handler=classify,
        ),
        ToolSpec(
            name="extract-entities",
            description="Extract named entities from text",
            method="POST",
            path="/tools/extract-entities",
            input_schema=object_schema(
                {"text": {"type": "string", "minLength": 1}},
                required=("text",),
            ),
            handler=extract_entities,
        ),
        ToolSpec(
            name="synthesize-insights",
            description="Relate content to a list of related items",
            method="POST",
            path="/tools/synthesize-insights",
            input_schema=object_schema(
                {
                    "content": {"type": "string", "minLength": 1},
                    "related_content": {"type": "array"},
                },
                required=("content",),
            ),
            handler=synthesize_insights,
        ),
        ToolSpec(
            name="generate-summary",
            description="Summarize content at a chosen length",
            method="POST",
            path="/tools/generate-summary",
            input_schema=object_schema(
                {
                    "content": {"type": "string", "minLength": 1},
                    "length": {"type": "string", "enum": list(SUMMARY_LENGTHS)},
                },
                required=("content",),
            ),
            handler=generate_summary,
        ),
    ]


def create_generation_app(model: TextModel, extractor: Extractor | None = None) -> Starlette:
    extractor = extractor or PatternExtractor()

    def health_details() -> dict[str, object]:
        return {"mode": model.name}

    on_shutdown = []
    aclose = getattr(model, "aclose", None)
    if aclose is not None:
        on_shutdown.append(aclose)

    return create_backend_app(
        SERVICE_NAME,
        generation_tools(model, extractor),
        health_details=health_details,
        on_shutdown=on_shutdown,
    )
