"""State categories for the 13-state interval gene model.

The interval13 topology labels every position of a genomic sequence with one of
13 states. For duration modeling the states collapse into three categories:

    0                      -> Intergenic
    1, 2, 3, 7, 8, 9       -> Exon     (three frames on each strand)
    4, 5, 6, 10, 11, 12    -> Intron   (three phases on each strand)

Example usage:
    >>> from torch_interval13.categories import Category, category_of
    >>> category_of(4)
    <Category.INTRON: 2>
    >>> Category.EXON.display_name
    'Exon'
"""

import numbers
from enum import IntEnum

from .validation import DurationConfigurationError

__all__ = [
    "NUM_STATES",
    "Category",
    "STATE_CATEGORIES",
    "category_of",
    "states_in",
]

NUM_STATES = 13


class Category(IntEnum):
    """Semantic grouping of interval13 states. Values are the feature ordinals."""

    INTERGENIC = 0
    EXON = 1
    INTRON = 2

    @property
    def ordinal(self) -> int:
        return int(self)

    @property
    def display_name(self) -> str:
        return self.name.capitalize()


_GROUPS = {
    Category.INTERGENIC: (0,),
    Category.EXON: (1, 2, 3, 7, 8, 9),
    Category.INTRON: (4, 5, 6, 10, 11, 12),
}


def _build_table(groups: dict[Category, tuple[int, ...]]) -> tuple[Category, ...]:
    """Invert ``groups`` into a per-state table, requiring a total, disjoint partition.

    Raises:
        DurationConfigurationError: If a state is in two categories or in none.
    """
    table: dict[int, Category] = {}
    for category, states in groups.items():
        for state in states:
            if state in table:
                raise DurationConfigurationError(
                    f"state {state} assigned to both {table[state].display_name} "
                    f"and {category.display_name}"
                )
            table[state] = category
    missing = sorted(set(range(NUM_STATES)) - set(table))
    extra = sorted(set(table) - set(range(NUM_STATES)))
    if missing or extra:
        raise DurationConfigurationError(
            f"category table must cover states [0, {NUM_STATES}) exactly, "
            f"missing {missing}, unexpected {extra}"
        )
    return tuple(table[s] for s in range(NUM_STATES))


# STATE_CATEGORIES[state] -> Category
STATE_CATEGORIES = _build_table(_GROUPS)


def category_of(state: int) -> Category:
    """Map an interval13 state id to its category.

    Raises:
        DurationConfigurationError: If ``state`` is not an int in ``[0, 12]``.
    """
    is_int = isinstance(state, numbers.Integral) and not isinstance(state, bool)
    if not is_int or not 0 <= state < NUM_STATES:
        raise DurationConfigurationError(
            f"state must be an int in [0, {NUM_STATES}), got {state!r}"
        )
    return STATE_CATEGORIES[int(state)]


def states_in(category: Category) -> tuple[int, ...]:
    """States belonging to ``category``, in increasing order."""
    return tuple(s for s, c in enumerate(STATE_CATEGORIES) if c is Category(category))
