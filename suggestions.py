"""Category suggestions learned from the user's own transaction names."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, Sequence


class NamedEntry(Protocol):
    name: str
    category: str


@dataclass(frozen=True)
class CategorySuggestion:
    category: str
    confidence: float
    count: int


@dataclass
class NameGroup:
    name: str
    count: int = 0
    categories: dict[str, int] = field(default_factory=dict)
    samples: list[dict[str, object]] = field(default_factory=list)

    @property
    def dominant_category(self) -> str:
        dominant = "Miscellaneous"
        best = 0
        for category, count in self.categories.items():
            if count > best:
                best = count
                dominant = category
        return dominant

    @property
    def is_mixed(self) -> bool:
        return len(self.categories) > 1


def _normalize(name: str) -> str:
    return name.strip().lower()


def significant_words(name: str) -> list[str]:
    return [word for word in _normalize(name).split() if len(word) > 2]


def is_similar(candidate: str, words: Sequence[str], entry_name: str) -> bool:
    """``candidate`` must already be normalized; ``words`` are its significant words."""
    other = _normalize(entry_name)
    if other == candidate:
        return True
    other_words = significant_words(other)
    for word in words:
        for other_word in other_words:
            if word in other_word or other_word in word:
                return True
    return other in candidate or candidate in other


def similar_entries(name: str, history: Iterable[NamedEntry]) -> list[NamedEntry]:
    candidate = _normalize(name)
    words = significant_words(candidate)
    return [entry for entry in history if is_similar(candidate, words, entry.name)]


def _tally(entries: Iterable[NamedEntry]) -> dict[str, int]:
    # dict keeps first-seen order, which decides ties.
    counts: dict[str, int] = {}
    for entry in entries:
        counts[entry.category] = counts.get(entry.category, 0) + 1
    return counts


def suggest(
    name: str, history: Sequence[NamedEntry], min_confidence: float = 0.6
) -> Optional[str]:
    if not name.strip() or not history:
        return None
    similar = similar_entries(name, history)
    if not similar:
        return None

    best_category: Optional[str] = None
    best_count = 0
    for category, count in _tally(similar).items():
        if count > best_count:
            best_category = category
            best_count = count

    if best_category is not None and best_count / len(similar) >= min_confidence:
        return best_category
    return None


def suggest_many(name: str, history: Sequence[NamedEntry]) -> list[CategorySuggestion]:
    if not name.strip() or not history:
        return []
    similar = similar_entries(name, history)
    if not similar:
        return []
    total = len(similar)
    suggestions = [
        CategorySuggestion(category=category, confidence=count / total, count=count)
        for category, count in _tally(similar).items()
    ]
    # sorted() is stable: equal confidences keep first-seen order.
    return sorted(suggestions, key=lambda s: s.confidence, reverse=True)


def group_by_name(transactions: Iterable, max_samples: int = 3) -> list[NameGroup]:
    """Group transactions by case-insensitive name for bulk recategorization.

    The first spelling seen is kept. Up to ``max_samples`` samples are stored,
    preferring distinct categories. Groups are ordered by count, then name.
    """
    groups: dict[str, NameGroup] = {}
    for txn in transactions:
        name = txn.name.strip()
        group = groups.setdefault(name.lower(), NameGroup(name=name))
        group.count += 1
        category = txn.category or "Miscellaneous"
        group.categories[category] = group.categories.get(category, 0) + 1
        if len(group.samples) < max_samples and not any(
            sample["category"] == category for sample in group.samples
        ):
            group.samples.append(
                {
                    "id": txn.id,
                    "category": category,
                    "date": txn.date,
                    "amount_cents": txn.amount_cents,
                    "type": txn.type,
                }
            )
    return sorted(groups.values(), key=lambda g: (-g.count, g.name.lower()))
