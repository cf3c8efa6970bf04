"""Per-category length models for the interval13 state-length feature.

Run lengths observed for each of the 13 states are pooled into the three
categories and one :class:`~torch_interval13.mixture.LengthModel` is fitted per
category. Intergenic lengths are modeled as exponential by default; exon and
intron lengths use a two-component Gamma mixture unless forced exponential.
"""

from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from .categories import NUM_STATES, Category, STATE_CATEGORIES
from .mixture import EMConfig, LengthModel, fit_length_model
from .validation import DurationConfigurationError, validate_num_states

__all__ = [
    "CategoryModels",
    "pool_by_category",
    "exponential_categories",
    "fit_category_models",
]


@dataclass(frozen=True)
class CategoryModels:
    """One fitted length model per category, indexable by :class:`Category`."""

    intergenic: LengthModel
    exon: LengthModel
    intron: LengthModel

    def __getitem__(self, category: Category) -> LengthModel:
        return (self.intergenic, self.exon, self.intron)[Category(category)]

    def __iter__(self) -> Iterator[LengthModel]:
        return iter((self.intergenic, self.exon, self.intron))


def pool_by_category(state_lengths: Sequence[Sequence[int]]) -> dict[Category, list[int]]:
    """Concatenate per-state run lengths into per-category sample lists.

    States are visited in increasing order, so pooled samples keep corpus order
    within each state.

    Raises:
        DurationConfigurationError: If ``state_lengths`` does not have one entry
            per interval13 state.
    """
    validate_num_states(len(state_lengths), NUM_STATES, name="len(state_lengths)")
    pooled: dict[Category, list[int]] = {c: [] for c in Category}
    for state, lengths in enumerate(state_lengths):
        pooled[STATE_CATEGORIES[state]].extend(lengths)
    return pooled


def exponential_categories(
    force_exponential: bool = False,
    exon_exponential: bool = False,
    intron_exponential: bool = False,
) -> frozenset[Category]:
    """Categories fitted with a single exponential rather than a Gamma mixture.

    Intergenic is always exponential. ``force_exponential`` adds every category;
    the per-category flags add only their own.
    """
    forced = {Category.INTERGENIC}
    if force_exponential or exon_exponential:
        forced.add(Category.EXON)
    if force_exponential or intron_exponential:
        forced.add(Category.INTRON)
    return frozenset(forced)


def fit_category_models(
    state_lengths: Sequence[Sequence[int]],
    exponential: frozenset[Category] = frozenset({Category.INTERGENIC}),
    em_config: Optional[EMConfig] = None,
    max_workers: Optional[int] = None,
) -> CategoryModels:
    """Fit one length model per category from per-state run lengths.

    Args:
        state_lengths: ``state_lengths[s]`` lists the run lengths of state ``s``;
            must have 13 entries. Lengths are used unfiltered.
        exponential: Categories to fit with a single exponential.
        em_config (EMConfig, optional): Estimator parameters for mixture fits.
        max_workers (int, optional): Fit categories concurrently with this many
            threads. Default: ``None`` (sequential)

    Returns:
        CategoryModels: The three fitted models.

    Raises:
        DurationConfigurationError: If there are not 13 states, or a category
            has no observed runs.
    """
    pooled = pool_by_category(state_lengths)
    for category, samples in pooled.items():
        if not samples:
            raise DurationConfigurationError(
                f"no {category.display_name.lower()} runs in the training data; "
                f"cannot fit its length model"
            )

    def fit(category: Category) -> LengthModel:
        return fit_length_model(
            pooled[category],
            force_exponential=category in exponential,
            config=em_config,
        )

    if max_workers is not None and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            models = list(pool.map(fit, Category))
    else:
        models = [fit(c) for c in Category]

    return CategoryModels(*models)
