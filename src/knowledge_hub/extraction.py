"""Entity and relationship extraction.

``Extractor`` is the seam for a model-backed implementation; the only one
shipped is ``PatternExtractor``, which matches capitalised name patterns and a
fixed technology vocabulary. Its confidence values are pseudo-random and carry
no statistical meaning.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import Protocol

PERSON = "PERSON"
ORGANIZATION = "ORGANIZATION"
LOCATION = "LOCATION"
TECHNOLOGY = "TECHNOLOGY"

_PERSON_RE = re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b")
_ORG_RE = re.compile(
    r"\b[A-Z][a-z]*(?:\s+[A-Z][a-z]*)*\s+"
    r"(?:Inc|Corp|LLC|Ltd|Company|Corporation|Technologies|Systems|University|Institute)\b"
)
_LOCATION_RE = re.compile(
    r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+(?:City|State|Country|Street|Avenue|Road|Boulevard)\b"
)

TECHNOLOGY_TERMS: tuple[str, ...] = (
    "AI",
    "Machine Learning",
    "Deep Learning",
    "Neural Network",
    "API",
    "Database",
    "Cloud Computing",
    "Azure",
    "Python",
    "JavaScript",
)

# (base confidence, random spread) per entity type
_CONFIDENCE = {
    PERSON: (0.85, 0.10),
    ORGANIZATION: (0.80, 0.15),
    LOCATION: (0.75, 0.20),
    TECHNOLOGY: (0.90, 0.05),
}

_RELATIONSHIP_RULES: dict[tuple[str, str], tuple[str, float]] = {
    (PERSON, ORGANIZATION): ("WORKS_AT", 0.75),
    (PERSON, LOCATION): ("LOCATED_IN", 0.70),
    (ORGANIZATION, LOCATION): ("HEADQUARTERS_IN", 0.80),
    (ORGANIZATION, TECHNOLOGY): ("USES_TECHNOLOGY", 0.85),
    (PERSON, TECHNOLOGY): ("SPECIALIZES_IN", 0.70),
}
_DEFAULT_RELATIONSHIP = ("RELATED_TO", 0.60)


@dataclass
class Entity:
    id: str
    type: str
    name: str
    confidence: float

    def to_dict(self, document_id: str | None = None) -> dict[str, object]:
        properties: dict[str, object] = {"confidence": round(self.confidence, 4)}
        if document_id is not None:
            properties["source_document"] = document_id
        return {"id": self.id, "type": self.type, "name": self.name, "properties": properties}


@dataclass
class Relationship:
    id: str
    source_id: str
    target_id: str
    type: str
    confidence: float

    def to_dict(self, document_id: str | None = None) -> dict[str, object]:
        properties: dict[str, object] = {"confidence": round(self.confidence, 4)}
        if document_id is not None:
            properties["source_document"] = document_id
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.type,
            "properties": properties,
        }


@dataclass
class ExtractionResult:
    entities: list[Entity] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)


class Extractor(Protocol):
    def extract(self, text: str) -> ExtractionResult: ...


def _unique(matches: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for match in matches:
        seen.setdefault(match, None)
    return list(seen)


class PatternExtractor:
    """Regex and vocabulary based reference ``Extractor``."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def _confidence(self, base: float, spread: float) -> float:
        return min(base + self._rng.random() * spread, 1.0)

    def extract_entities(self, text: str) -> list[Entity]:
        entities: list[Entity] = []
        for entity_type, prefix, pattern in (
            (PERSON, "person", _PERSON_RE),
            (ORGANIZATION, "org", _ORG_RE),
            (LOCATION, "location", _LOCATION_RE),
        ):
            for index, name in enumerate(_unique(pattern.findall(text)), start=1):
                entities.append(
                    Entity(
                        id=f"{prefix}_{index}",
                        type=entity_type,
                        name=name,
                        confidence=self._confidence(*_CONFIDENCE[entity_type]),
                    )
                )

        lowered = text.lower()
        for index, term in enumerate(TECHNOLOGY_TERMS, start=1):
            if term.lower() in lowered:
                entities.append(
                    Entity(
                        id=f"tech_{index}",
                        type=TECHNOLOGY,
                        name=term,
                        confidence=self._confidence(*_CONFIDENCE[TECHNOLOGY]),
                    )
                )
        return entities

    def relate(self, entities: list[Entity]) -> list[Relationship]:
        """Pair every two entities of different types into a typed relationship."""
        relationships: list[Relationship] = []
        for i, first in enumerate(entities):
            for second in entities[i + 1 :]:
                if first.type == second.type:
                    continue
                rel_type, base = _RELATIONSHIP_RULES.get(
                    (first.type, second.type), _DEFAULT_RELATIONSHIP
                )
                relationships.append(
                    Relationship(
                        id=f"rel_{len(relationships) + 1}",
                        source_id=first.id,
                        target_id=second.id,
                        type=rel_type,
                        confidence=self._confidence(base, 0.15),
                    )
                )
        return relationships

    def extract(self, text: str) -> ExtractionResult:
        entities = self.extract_entities(text)
        return ExtractionResult(entities=entities, relationships=self.relate(entities))
