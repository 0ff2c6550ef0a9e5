from datetime import date
from types import SimpleNamespace

from models import TransactionType
from suggestions import group_by_name, significant_words, suggest, suggest_many


def entries(*pairs):
    return [SimpleNamespace(name=name, category=category) for name, category in pairs]


GROCERY_HISTORY = entries(
    ("Grocery Store", "Food"),
    ("Grocery Mart", "Food"),
    ("Grocery Outlet", "Food"),
    ("Gas Station", "Transport"),
)


def test_significant_words_drop_short_tokens() -> None:
    assert significant_words("  A Tim Hortons at Bay ") == ["tim", "hortons", "bay"]


def test_suggest_matches_on_shared_words() -> None:
    assert suggest("Grocery Run", GROCERY_HISTORY) == "Food"


def test_suggest_grocery_run_from_grocery_history() -> None:
    history = entries(
        ("Grocery Store", "Food"),
        ("Grocery Shopping", "Food"),
        ("Walmart Grocery", "Food"),
    )

    assert suggest("Grocery Run", history) == "Food"
    assert suggest("Totally Unrelated Zzzqx", history) is None


def test_suggest_returns_none_when_nothing_is_similar() -> None:
    assert suggest("Totally Unrelated Zzzqx", GROCERY_HISTORY) is None
    assert suggest("", GROCERY_HISTORY) is None
    assert suggest("Grocery", []) is None


def test_suggest_matches_on_containment() -> None:
    history = entries(("UBER", "Transport"), ("Uber Eats", "Food"), ("uber", "Transport"))

    assert suggest("uber trip", history) == "Transport"


def test_suggest_respects_confidence_threshold() -> None:
    history = entries(("Coffee", "Food"), ("Coffee", "Dining"))

    assert suggest("Coffee", history) is None
    # Tie at 50%: first category encountered wins.
    assert suggest("Coffee", history, min_confidence=0.5) == "Food"


def test_suggest_many_is_sorted_and_stable_on_ties() -> None:
    history = entries(
        ("Coffee A", "Dining"),
        ("Coffee B", "Food"),
        ("Coffee C", "Food"),
        ("Coffee D", "Dining"),
        ("Coffee E", "Travel"),
    )

    result = suggest_many("coffee", history)

    assert [(s.category, s.count) for s in result] == [
        ("Dining", 2),
        ("Food", 2),
        ("Travel", 1),
    ]
    assert result[0].confidence == 0.4
    assert suggest_many("Zzzqx", history) == []


def test_group_by_name_keeps_first_spelling_and_distinct_samples() -> None:
    def txn(txn_id, name, category):
        return SimpleNamespace(
            id=txn_id,
            name=name,
            category=category,
            date=date(2026, 10, txn_id),
            amount_cents=1599,
            type=TransactionType.expense,
        )

    groups = group_by_name(
        [
            txn(1, "Spotify ", "Music"),
            txn(2, "Netflix", "Streaming"),
            txn(3, "netflix", "Streaming"),
            txn(4, "SPOTIFY", "Subscriptions"),
            txn(5, "Spotify", "Music"),
            txn(6, "Spotify", "Fun"),
            txn(7, "Spotify", "Other"),
        ]
    )

    spotify, netflix = groups
    assert spotify.name == "Spotify"
    assert spotify.count == 5
    assert spotify.categories == {"Music": 2, "Subscriptions": 1, "Fun": 1, "Other": 1}
    assert spotify.dominant_category == "Music"
    assert [s["id"] for s in spotify.samples] == [1, 4, 6]
    assert netflix.count == 2
    assert not netflix.is_mixed
