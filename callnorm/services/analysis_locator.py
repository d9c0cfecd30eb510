"""
Analysis block lookup.

The provider puts its lead-analysis literal under different keys depending on
how the account's data collection is configured. Rather than branching on
payload version, the lookup is an ordered list of strategies; the first one
that finds a non-empty value wins, even if later strategies would also match.
New collection-name conventions are added by extending the list.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from callnorm.config import get_settings

logger = logging.getLogger(__name__)

DATA_COLLECTION_KEY = "data_collection_results"

# Where the analysis object can live, in precedence order
ANALYSIS_ROOTS: tuple[tuple[str, ...], ...] = (("data", "analysis"), ("analysis",))


def _walk(envelope: Any, path: Sequence[str]) -> Any:
    node = envelope
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _literal_from(value: Any) -> Optional[str]:
    """Non-blank strings pass through; a structured dict is serialized so the parser sees one format."""
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, dict) and value:
        return json.dumps(value)
    return None


@dataclass(frozen=True)
class CollectionValue:
    """<root>.data_collection_results[<collection>].value"""
    root: tuple[str, ...]
    collection: str

    @property
    def name(self) -> str:
        return f"{'.'.join(self.root)}.{DATA_COLLECTION_KEY}[{self.collection!r}].value"

    def lookup(self, envelope: Any) -> Optional[str]:
        return _literal_from(_walk(envelope, (*self.root, DATA_COLLECTION_KEY, self.collection, "value")))


@dataclass(frozen=True)
class AnyCollectionValue:
    """First collection under <root>.data_collection_results with a usable value."""
    root: tuple[str, ...]

    @property
    def name(self) -> str:
        return f"{'.'.join(self.root)}.{DATA_COLLECTION_KEY}[*].value"

    def lookup(self, envelope: Any) -> Optional[str]:
        collections = _walk(envelope, (*self.root, DATA_COLLECTION_KEY))
        if not isinstance(collections, dict):
            return None
        for entry in collections.values():
            if isinstance(entry, dict):
                literal = _literal_from(entry.get("value"))
                if literal is not None:
                    return literal
        return None


@dataclass(frozen=True)
class LegacyValue:
    """<root>.value, the oldest format, before data collections existed."""
    root: tuple[str, ...]

    @property
    def name(self) -> str:
        return f"{'.'.join(self.root)}.value"

    def lookup(self, envelope: Any) -> Optional[str]:
        return _literal_from(_walk(envelope, (*self.root, "value")))


LookupStrategy = Union[CollectionValue, AnyCollectionValue, LegacyValue]


@dataclass(frozen=True)
class LocatedAnalysis:
    literal: str
    strategy: str


def default_strategies(collection_names: Optional[Sequence[str]] = None) -> list[LookupStrategy]:
    """Named collections first (in configured order), then any collection, then the legacy field."""
    names = collection_names if collection_names is not None else get_settings().analysis_collection_names
    strategies: list[LookupStrategy] = [
        CollectionValue(root=root, collection=name)
        for name in names
        for root in ANALYSIS_ROOTS
    ]
    strategies.extend(AnyCollectionValue(root=root) for root in ANALYSIS_ROOTS)
    strategies.extend(LegacyValue(root=root) for root in reversed(ANALYSIS_ROOTS))
    return strategies


def locate_analysis_literal(
    envelope: Any,
    strategies: Optional[Sequence[LookupStrategy]] = None,
) -> Optional[LocatedAnalysis]:
    """
    Return the first non-empty analysis literal, or None when the envelope has
    no analysis block (in-progress or analysis-disabled calls).
    """
    for strategy in strategies if strategies is not None else default_strategies():
        literal = strategy.lookup(envelope)
        if literal is not None:
            logger.debug("Analysis literal found", extra={"strategy": strategy.name})
            return LocatedAnalysis(literal=literal, strategy=strategy.name)
    return None
