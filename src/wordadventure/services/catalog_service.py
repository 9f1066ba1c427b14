"""Word catalog collaborator."""
import json
import logging
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

from wordadventure.models.word_models import WordItem

logger = logging.getLogger(__name__)


class WordCatalog(Protocol):
    """Read-only source of vocabulary items."""

    def get_words_by_category(self, category: str) -> List[WordItem]:
        ...

    def all_words(self) -> List[WordItem]:
        ...

    def categories(self) -> List[str]:
        ...


class InMemoryWordCatalog:
    """Catalog held in memory, preserving catalog order."""

    def __init__(self, words: Iterable[WordItem]):
        self._words: Dict[int, WordItem] = OrderedDict()
        self._by_category: Dict[str, List[WordItem]] = OrderedDict()
        for word in words:
            if word.id in self._words:
                logger.warning(f"Duplicate word id {word.id} in catalog, keeping the first entry")
                continue
            self._words[word.id] = word
            self._by_category.setdefault(word.category, []).append(word)

    def get_words_by_category(self, category: str) -> List[WordItem]:
        """Get the words of a category, empty for an unknown category."""
        if category == "all":
            return self.all_words()
        return list(self._by_category.get(category, []))

    def all_words(self) -> List[WordItem]:
        return list(self._words.values())

    def categories(self) -> List[str]:
        return list(self._by_category.keys())

    def get_word(self, word_id: int) -> Optional[WordItem]:
        return self._words.get(word_id)

    def __len__(self) -> int:
        return len(self._words)


def load_catalog(path: Path) -> InMemoryWordCatalog:
    """Load a catalog from a JSON file.

    The file holds either a list of word records or an object mapping category
    names to lists of records without a category field.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    records = []
    if isinstance(data, dict):
        for category, items in data.items():
            for item in items:
                records.append({"category": category, **item})
    else:
        records = list(data)

    words = [WordItem.from_data(record) for record in records]
    logger.info(f"Loaded {len(words)} words from {path}")
    return InMemoryWordCatalog(words)
