"""
Declarative feature extraction from user text.

A StateSchema maps feature names to Feature definitions. Parsing a user
utterance yields a feature dict suitable for State.features, so the
context key (and therefore what the bandit learns) follows from plain
keyword rules or small custom extractors.

Example:
    >>> schema = StateSchema.define({
    ...     "intent": Feature.enum(["browse", "buy"]).matches({"buy": ["purchase", "buy"]}),
    ...     "angry": Feature.boolean().matches({"true": ["furious", "angry"]}),
    ... })
    >>> schema.parse("I want to BUY this")
    {'intent': 'buy', 'angry': False}
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional

from .entities.state import ConversationTurn, FeatureValue, State

logger = logging.getLogger(__name__)

FeatureKind = Literal["enum", "boolean", "number", "text"]
Extractor = Callable[[str], Any]

_FALSE_WORDS = ("false", "0", "no")


@dataclass
class Feature:
    """
    A single feature definition.

    Built with the class constructors and chained modifiers, e.g.
    ``Feature.number().extract(count_digits).default(0)``.
    """
    kind: FeatureKind
    options: List[str] = field(default_factory=list)
    keywords: Dict[str, List[str]] = field(default_factory=dict)
    default_value: Any = None
    description: str = ""
    extractor: Optional[Extractor] = None

    @classmethod
    def enum(cls, options: List[str]) -> "Feature":
        """Categorical feature; defaults to the first option."""
        return cls(kind="enum", options=list(options), default_value=options[0] if options else None)

    @classmethod
    def boolean(cls) -> "Feature":
        return cls(kind="boolean", default_value=False)

    @classmethod
    def number(cls) -> "Feature":
        return cls(kind="number", default_value=0)

    @classmethod
    def text(cls) -> "Feature":
        return cls(kind="text", default_value="")

    def matches(self, mapping: Dict[str, List[str]]) -> "Feature":
        """Map feature values to trigger keywords (case-insensitive substring match)."""
        self.keywords = {value: list(words) for value, words in mapping.items()}
        return self

    def extract(self, fn: Extractor) -> "Feature":
        """Use a custom extractor; it receives the lowercased text."""
        self.extractor = fn
        return self

    def default(self, value: Any) -> "Feature":
        self.default_value = value
        return self

    def describe(self, text: str) -> "Feature":
        self.description = text
        return self

    def cast(self, value: str) -> Any:
        """Convert a matched keyword-map key to this feature's type."""
        if self.kind == "boolean":
            return value.strip().lower() not in _FALSE_WORDS
        if self.kind == "number":
            return float(value)
        return value


class StateSchema:
    """Named set of features parsed from user text."""

    def __init__(self, shape: Dict[str, Feature]):
        self.features = dict(shape)

    @classmethod
    def define(cls, shape: Dict[str, Feature]) -> "StateSchema":
        return cls(shape)

    def parse(self, text: str) -> Dict[str, FeatureValue]:
        """
        Extract every feature from `text`.

        Precedence per feature: custom extractor, then keyword match, then
        the default. A failing extractor only affects its own feature,
        which falls back to its default.
        """
        normalized = text.lower()
        result: Dict[str, FeatureValue] = {}
        for name, feature in self.features.items():
            result[name] = self._extract_value(name, feature, normalized)
        return result

    def _extract_value(self, name: str, feature: Feature, text: str) -> Any:
        if feature.extractor is not None:
            try:
                return feature.extractor(text)
            except Exception as e:
                logger.warning(f"Feature extractor for '{name}' failed: {e}")
                return feature.default_value

        for value, words in feature.keywords.items():
            if any(word.lower() in text for word in words):
                try:
                    return feature.cast(value)
                except ValueError as e:
                    logger.warning(f"Feature '{name}' could not cast '{value}': {e}")
                    return feature.default_value

        return feature.default_value

    def to_state(self, text: str, **context: Any) -> State:
        """
        Build a State from a user utterance.

        Args:
            text: The user text
            **context: Optional ``conversation_id``, ``turn_number`` (default 1),
                ``history``, ``features`` (override parsed ones), ``intent``,
                ``metadata``
        """
        features = self.parse(text)
        features.update(context.get("features") or {})

        history = context.get("history")
        if history is None:
            history = (ConversationTurn(speaker="user", text=text),)

        return State(
            conversation_id=context.get("conversation_id") or f"conv_{uuid.uuid4().hex}",
            turn_number=context.get("turn_number", 1),
            history=tuple(history),
            features=features,
            intent=context.get("intent"),
            metadata=dict(context.get("metadata") or {}),
        )
