"""Text model used by the generation backend.

``MockTextModel`` answers deterministically from keyword heuristics;
``OpenAITextModel`` calls the chat completions API.
"""

from __future__ import annotations

import json
import logging
import random
import re
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: dict[str, tuple[str, ...]] = {
    "Technical Documentation": ("api", "software", "database", "code", "python", "system"),
    "Research Paper": ("research", "study", "experiment", "neural", "methodology", "findings"),
    "Business Report": ("revenue", "market", "quarter", "business", "sales", "growth"),
    "Legal": ("contract", "agreement", "liability", "clause", "regulation"),
    "Education": ("tutorial", "guide", "introduction", "course", "learn"),
}

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_WORD_RE = re.compile(r"[A-Za-z][A-Za-z\-]{3,}")
_STOPWORDS = frozenset(
    {"this", "that", "with", "from", "have", "will", "which", "their", "there", "about", "into"}
)
_SUMMARY_SENTENCES = {"short": 1, "medium": 3, "long": 5}


class TextModel(Protocol):
    name: str

    async def generate(self, prompt: str, max_tokens: int, temperature: float) -> str: ...

    async def classify(
        self, content: str, context: str | None, categories: list[str] | None
    ) -> dict[str, object]: ...

    async def synthesize_insights(self, content: str, related: list[object]) -> str: ...

    async def summarize(self, content: str, length: str) -> str: ...


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_RE.split(text.strip()) if s.strip()]


def top_keywords(text: str, limit: int = 5) -> list[str]:
    counts: dict[str, int] = {}
    for word in _WORD_RE.findall(text.lower()):
        if word in _STOPWORDS:
            continue
        counts[word] = counts.get(word, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [word for word, _ in ranked[:limit]]


def _related_label(item: object) -> str | None:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        for key in ("name", "title"):
            value = item.get(key)
            if isinstance(value, str):
                return value
        entity = item.get("entity")
        if isinstance(entity, dict) and isinstance(entity.get("name"), str):
            return entity["name"]
    return None


class MockTextModel:
    name = "mock"

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    async def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        excerpt = prompt[:30]
        return (
            f'Response to "{excerpt}...": this is a mock completion demonstrating '
            "text generation."
        )

    async def classify(
        self, content: str, context: str | None, categories: list[str] | None
    ) -> dict[str, object]:
        text = f"{context or ''} {content}".lower()
        vocabulary = {
            name: DEFAULT_CATEGORIES.get(name, (name.lower(),))
            for name in (categories or list(DEFAULT_CATEGORIES))
        }
        scores = {
            name: sum(text.count(keyword) for keyword in keywords)
            for name, keywords in vocabulary.items()
        }
        best = max(scores, key=lambda name: (scores[name], -list(scores).index(name)))
        if scores[best] == 0:
            best = "General"
        return {
            "category": best,
            "tags": top_keywords(content),
            "confidence": round(0.6 + self._rng.random() * 0.35, 4),
        }

    async def synthesize_insights(self, content: str, related: list[object]) -> str:
        labels = [label for label in map(_related_label, related) if label]
        keywords = top_keywords(content, limit=3)
        parts = []
        if keywords:
            parts.append(f"Key themes: {', '.join(keywords)}.")
        if labels:
            parts.append(f"Connected to {len(labels)} related items including {', '.join(labels[:3])}.")
        else:
            parts.append("No related items were found yet.")
        return " ".join(parts)

    async def summarize(self, content: str, length: str) -> str:
        sentences = split_sentences(content)
        if not sentences:
            return ""
        return " ".join(sentences[: _SUMMARY_SENTENCES.get(length, 3)])


class OpenAITextModel:
    """Chat-completions backed model over httpx."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _complete(
        self,
        system: str,
        user: str,
        max_tokens: int = 800,
        temperature: float = 0.3,
    ) -> str:
        response = await self._client.post(
            "/chat/completions",
            json={
                "model": self._model,
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
        )
        response.raise_for_status()
        data = response.json()
        return str(data["choices"][0]["message"]["content"]).strip()

    async def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        return await self._complete(
            "You are a helpful assistant.", prompt, max_tokens=max_tokens, temperature=temperature
        )

    async def classify(
        self, content: str, context: str | None, categories: list[str] | None
    ) -> dict[str, object]:
        allowed = categories or list(DEFAULT_CATEGORIES)
        raw = await self._complete(
            (
                "Classify the document. Reply with JSON only: "
                '{"category": string, "tags": [string], "confidence": number}. '
                f"Allowed categories: {', '.join(allowed)}, General."
            ),
            f"Context: {context or 'none'}\n\n{content[:6000]}",
            temperature=0.0,
        )
        fallback = {"category": "General", "tags": [], "confidence": 0.5}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Classifier returned non-JSON output; using General")
            return fallback
        if not isinstance(parsed, dict):
            logger.warning("Classifier returned %s instead of an object; using General", type(parsed).__name__)
            return fallback
        tags = parsed.get("tags")
        try:
            confidence = float(parsed.get("confidence") or 0.5)
        except (TypeError, ValueError):
            logger.warning("Classifier returned non-numeric confidence %r", parsed.get("confidence"))
            confidence = 0.5
        return {
            "category": str(parsed.get("category") or "General"),
            "tags": [str(tag) for tag in tags] if isinstance(tags, list) else [],
            "confidence": confidence,
        }

    async def synthesize_insights(self, content: str, related: list[object]) -> str:
        labels = [label for label in map(_related_label, related) if label]
        return await self._complete(
            "Write two or three sentences of insight connecting the text to the related items.",
            f"Text:\n{content[:6000]}\n\nRelated items: {', '.join(labels) or 'none'}",
        )

    async def summarize(self, content: str, length: str) -> str:
        sentences = _SUMMARY_SENTENCES.get(length, 3)
        return await self._complete(
            f"Summarize the document in at most {sentences} sentences.",
            content[:8000],
        )
