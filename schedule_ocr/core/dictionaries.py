"""
Dictionary-assisted fuzzy correction for Schedule OCR.

PRINCIPLE: Only correct when the best candidate across every dictionary
clears that dictionary's threshold. A miss is not an error, the token is
passed through unchanged.

Vocabularies and thresholds are static configuration, loaded once from
`data/dictionaries.yaml`.
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import yaml
from rapidfuzz import fuzz, process

from .errors import DictionaryConfigError

WEEKDAYS = "weekdays"
LOCATIONS = "locations"
ORGANIZERS = "organizers"
EXPECTED_WORDS = "expected_words"
SECTION_END_MARKERS = "section_end_markers"

CATEGORIES = (WEEKDAYS, LOCATIONS, ORGANIZERS, EXPECTED_WORDS)

DEFAULT_DICTIONARY_PATH = Path(__file__).resolve().parent.parent / "data" / "dictionaries.yaml"


def similarity(a: str, b: str) -> float:
    """Case-insensitive similarity ratio between two strings (0.0 to 1.0)."""
    if not a or not b:
        return 0.0
    return fuzz.ratio(a.lower(), b.lower()) / 100.0


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class Dictionary:
    """Curated vocabulary of one category with its acceptance threshold."""
    category: str
    entries: Tuple[str, ...]
    threshold: float

    def __post_init__(self):
        if not 0.0 < self.threshold < 1.0:
            raise DictionaryConfigError(
                f"Threshold for '{self.category}' must be in (0, 1), got {self.threshold}"
            )
        # De-duplicate while keeping order
        object.__setattr__(self, "entries", tuple(dict.fromkeys(self.entries)))

    def best_entry(self, token: str) -> Tuple[Optional[str], float]:
        """Most similar entry and its similarity."""
        if not token or not self.entries:
            return None, 0.0

        result = process.extractOne(
            token, self.entries, scorer=fuzz.ratio, processor=str.lower
        )
        if result is None:
            return None, 0.0

        entry, score, _ = result
        return entry, score / 100.0


@dataclass(frozen=True)
class DictionaryMatch:
    """Accepted dictionary correction."""
    text: str
    similarity: float
    category: str


@dataclass(frozen=True)
class DictionaryConfig:
    """All vocabularies of a session."""
    dictionaries: Tuple[Dictionary, ...]
    section_end_markers: Dictionary

    def get(self, category: str) -> Dictionary:
        for dictionary in self.dictionaries:
            if dictionary.category == category:
                return dictionary
        raise KeyError(category)


# =============================================================================
# Loading
# =============================================================================

def _parse_dictionary(raw: Dict, category: Optional[str] = None) -> Dictionary:
    if not isinstance(raw, dict):
        raise DictionaryConfigError(f"Dictionary entry must be a mapping, got {type(raw).__name__}")

    try:
        entries = raw["entries"]
        threshold = float(raw["threshold"])
        category = category or raw["category"]
    except (KeyError, TypeError, ValueError) as e:
        raise DictionaryConfigError(f"Malformed dictionary definition: {e}") from e

    if not isinstance(entries, list) or not entries:
        raise DictionaryConfigError(f"Dictionary '{category}' needs a non-empty entries list")

    return Dictionary(
        category=str(category),
        entries=tuple(str(entry) for entry in entries),
        threshold=threshold
    )


def parse_dictionary_config(data: Dict) -> DictionaryConfig:
    """Build a DictionaryConfig from already-parsed YAML data."""
    if not isinstance(data, dict) or "dictionaries" not in data:
        raise DictionaryConfigError("Configuration needs a 'dictionaries' list")

    dictionaries = tuple(_parse_dictionary(raw) for raw in data["dictionaries"])

    categories = [d.category for d in dictionaries]
    missing = [c for c in CATEGORIES if c not in categories]
    if missing:
        raise DictionaryConfigError(f"Missing dictionary categories: {', '.join(missing)}")

    if SECTION_END_MARKERS not in data:
        raise DictionaryConfigError(f"Configuration needs '{SECTION_END_MARKERS}'")
    markers = _parse_dictionary(data[SECTION_END_MARKERS], category=SECTION_END_MARKERS)

    return DictionaryConfig(dictionaries=dictionaries, section_end_markers=markers)


@lru_cache(maxsize=None)
def _load_cached(path: str) -> DictionaryConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise DictionaryConfigError(f"Cannot read dictionary file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise DictionaryConfigError(f"Invalid YAML in {path}: {e}") from e

    return parse_dictionary_config(data)


def load_dictionaries(path: Optional[str] = None) -> DictionaryConfig:
    """
    Load the dictionary configuration.

    Each file is read once per process; later calls return the same
    immutable configuration.

    Raises:
        DictionaryConfigError: If the file is missing or malformed
    """
    resolved = Path(path) if path else DEFAULT_DICTIONARY_PATH
    return _load_cached(str(resolved.resolve()))


# =============================================================================
# Matcher
# =============================================================================

class DictionaryMatcher:
    """Fuzzy-corrects tokens against curated vocabularies."""

    def __init__(self, dictionaries: Optional[Sequence[Dictionary]] = None):
        if dictionaries is None:
            dictionaries = load_dictionaries().dictionaries
        self.dictionaries = tuple(dictionaries)

    def dictionary(self, category: str) -> Dictionary:
        for dictionary in self.dictionaries:
            if dictionary.category == category:
                return dictionary
        raise KeyError(category)

    def _select(self, categories: Optional[Iterable[str]]) -> List[Dictionary]:
        if categories is None:
            return list(self.dictionaries)
        wanted = set(categories)
        return [d for d in self.dictionaries if d.category in wanted]

    def match(self, token: str, categories: Optional[Iterable[str]] = None) -> Optional[DictionaryMatch]:
        """
        Best-scoring (entry, dictionary) pair, if it clears its threshold.

        Args:
            token: Recognised token
            categories: Restrict the search to these categories (default: all)

        Returns:
            DictionaryMatch, or None when no candidate qualifies
        """
        token = token.strip() if token else ""
        if not token:
            return None

        best_entry = None
        best_score = 0.0
        best_dictionary = None

        for dictionary in self._select(categories):
            entry, score = dictionary.best_entry(token)
            if entry is not None and score > best_score:
                best_entry = entry
                best_score = score
                best_dictionary = dictionary

        if best_dictionary is None or best_score <= best_dictionary.threshold:
            return None

        return DictionaryMatch(
            text=best_entry,
            similarity=best_score,
            category=best_dictionary.category
        )

    def find_best_match(self, token: str, categories: Optional[Iterable[str]] = None) -> str:
        """Corrected token, or the token unchanged on a dictionary miss."""
        match = self.match(token, categories)
        return match.text if match else token

    def correct_words(self, text: str, categories: Optional[Iterable[str]] = None) -> str:
        """Correct every whitespace-separated word of a text."""
        return " ".join(self.find_best_match(word, categories) for word in text.split())
