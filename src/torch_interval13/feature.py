r"""State-length log-probability feature for the interval13 gene model.

A semi-Markov CRF feature scored once per segment: for a segment of ``length``
positions labeled ``state``, the feature value is the log-density of ``length``
under the length model of the state's category (intergenic, exon or intron).
The value depends only on ``(state, length)``, so engines may cache it in a
``(max_duration, 13)`` table (see :meth:`TrainedStateLength.length_table`).

Training pools the run lengths of the 13 states into the three categories and
fits one model per category:

- Intergenic: exponential.
- Exon, intron: two-component Gamma mixture, unless ``force_exponential`` or
  the category's own flag forces an exponential.

With ``multiple_features`` the three categories get their own weights at
``start_index``, ``start_index + 1`` and ``start_index + 2`` (intergenic, exon,
intron); otherwise all categories share ``start_index``.

Examples::

    >>> from torch_interval13 import (
    ...     FeatureList, ModelTopology, StateLengthConfig, StateLengthLogprob
    ... )
    >>> feature = StateLengthLogprob(StateLengthConfig(multiple_features=True))
    >>> model = feature.train(0, ModelTopology(num_states=13), sequences)
    >>> result = FeatureList()
    >>> feature.evaluate_at(model, seq, pos=10, length=120, state=2, result=result)
    >>> result.indices
    [1]
"""

import warnings
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Optional

import torch
from torch import Tensor

from .categories import NUM_STATES, STATE_CATEGORIES, Category, category_of
from .helpers import CacheStrategy, FeatureList, LabelSequence, state_run_lengths
from .mixture import DTYPE, EMConfig
from .trainer import CategoryModels, exponential_categories, fit_category_models
from .validation import (
    DurationInvariantError,
    PositiveLogProbWarning,
    validate_log_prob,
    validate_num_states,
    validate_segment_length,
)

__all__ = [
    "FEATURE_NAME",
    "StateLengthConfig",
    "TrainedStateLength",
    "StateLengthLogprob",
]

FEATURE_NAME = "StateDurationLogProbForModelInterval13"


@dataclass(frozen=True)
class StateLengthConfig:
    """Options of the state-length feature, fixed before training.

    Args:
        force_exponential (bool): Model every category as exponential.
        exon_exponential (bool): Model exon lengths as exponential.
        intron_exponential (bool): Model intron lengths as exponential.
        multiple_features (bool): Give intergenic, exon and intron lengths
            separate weights (3 features) instead of one shared weight.
        no_intergenic (bool): Do not score intergenic segments.
        em (EMConfig): Gamma-mixture estimator parameters.
    """

    force_exponential: bool = False
    exon_exponential: bool = False
    intron_exponential: bool = False
    multiple_features: bool = False
    no_intergenic: bool = False
    em: EMConfig = field(default_factory=EMConfig)

    @property
    def feature_count(self) -> int:
        return 3 if self.multiple_features else 1

    def exponential_categories(self) -> frozenset[Category]:
        return exponential_categories(
            force_exponential=self.force_exponential,
            exon_exponential=self.exon_exponential,
            intron_exponential=self.intron_exponential,
        )


@dataclass(frozen=True)
class TrainedStateLength:
    """Immutable result of training: feature offset, options and fitted models.

    Safe to share across concurrent scoring workers.
    """

    start_index: int
    config: StateLengthConfig
    models: CategoryModels

    @property
    def feature_count(self) -> int:
        return self.config.feature_count

    def feature_index(self, category: Category) -> int:
        if self.config.multiple_features:
            return self.start_index + Category(category).ordinal
        return self.start_index

    def feature_name(self, index: int) -> str:
        offset = index - self.start_index
        if not 0 <= offset < self.feature_count:
            raise IndexError(
                f"feature index {index} outside [{self.start_index}, "
                f"{self.start_index + self.feature_count})"
            )
        if self.config.multiple_features:
            return f"{Category(offset).display_name} lengths"
        return FEATURE_NAME

    def log_prob(self, state: int, length: int) -> float:
        """Validated log-density of a ``length``-long segment of ``state``.

        Raises:
            DurationInvariantError: If ``length`` is not positive or the value
                is not finite.
            DurationConfigurationError: If ``state`` is not an interval13 state.
        """
        validate_segment_length(length)
        category = category_of(state)
        value = self.models[category].log_density(length)
        validate_log_prob(value, state, length)
        return value

    def evaluate(self, state: int, length: int, result: FeatureList) -> None:
        """Add this segment's feature value to ``result``.

        Writes once at :meth:`feature_index`, or not at all for intergenic
        segments when ``no_intergenic`` is set.
        """
        validate_segment_length(length)
        category = category_of(state)
        if self.config.no_intergenic and category is Category.INTERGENIC:
            return
        value = self.models[category].log_density(length)
        validate_log_prob(value, state, length)
        result.add_feature(self.feature_index(category), value)

    def length_table(self, max_duration: int) -> Tensor:
        r"""Feature values for every ``(length, state)`` up to ``max_duration``.

        Returns:
            Tensor: float64 tensor of shape :math:`(K, 13)` where row ``k - 1``
            holds the log-density of length ``k``. Intergenic columns are zero
            when ``no_intergenic`` is set.
        """
        if max_duration < 1:
            raise ValueError(f"max_duration must be >= 1, got {max_duration}")

        k = torch.arange(1, max_duration + 1, dtype=DTYPE)
        per_category = []
        for category in Category:
            values = self.models[category].log_prob(k)
            if not torch.isfinite(values).all():
                bad = k[~torch.isfinite(values)][0].item()
                raise DurationInvariantError(
                    f"{category.display_name} log-probability is not finite at length={int(bad)}"
                )
            if self.config.no_intergenic and category is Category.INTERGENIC:
                values = torch.zeros_like(values)
            per_category.append(values)

        n_positive = sum(int((v > 0).sum()) for v in per_category)
        if n_positive:
            warnings.warn(
                f"{n_positive} state-length log-probabilities > 0 for lengths <= {max_duration}",
                PositiveLogProbWarning,
                stacklevel=2,
            )

        return torch.stack([per_category[STATE_CATEGORIES[s]] for s in range(NUM_STATES)], dim=1)


class StateLengthLogprob:
    """Explicit-length CRF feature scoring segment durations per category.

    The feature object only holds options; :meth:`train` returns a
    :class:`TrainedStateLength` that is passed to every evaluation.

    Args:
        config (StateLengthConfig, optional): Feature options.
            Default: ``StateLengthConfig()``
        input_component (str, optional): Name of the input track this feature
            reads. The value never depends on sequence content. Default: ``None``
    """

    def __init__(
        self,
        config: Optional[StateLengthConfig] = None,
        input_component: Optional[str] = None,
    ):
        self.config = config if config is not None else StateLengthConfig()
        self.input_component = input_component

    def train(
        self,
        starting_index: int,
        topology,
        sequences: Iterable[LabelSequence],
        max_workers: Optional[int] = None,
    ) -> TrainedStateLength:
        """Fit the three length models from labeled training sequences.

        Args:
            starting_index (int): Index of this feature's first weight.
            topology: Model description with a ``num_states`` attribute; must be 13.
            sequences: Per-position state labels of each training sequence.
            max_workers (int, optional): Fit categories concurrently.

        Raises:
            DurationConfigurationError: If the model does not have 13 states or
                a category has no runs in the training data.
        """
        validate_num_states(topology.num_states, NUM_STATES)
        runs = state_run_lengths(sequences, topology.num_states)
        return self.train_from_run_lengths(starting_index, runs, max_workers=max_workers)

    def train_from_run_lengths(
        self,
        starting_index: int,
        state_lengths: Sequence[Sequence[int]],
        max_workers: Optional[int] = None,
    ) -> TrainedStateLength:
        """Like :meth:`train`, from per-state run lengths already decomposed."""
        if starting_index < 0:
            raise ValueError(f"starting_index must be non-negative, got {starting_index}")
        models = fit_category_models(
            state_lengths,
            exponential=self.config.exponential_categories(),
            em_config=self.config.em,
            max_workers=max_workers,
        )
        return TrainedStateLength(start_index=starting_index, config=self.config, models=models)

    def evaluate_at(
        self,
        model: TrainedStateLength,
        sequence,
        position: int,
        length: int,
        state: int,
        result: FeatureList,
    ) -> None:
        """Score a segment of ``length`` positions at ``position``.

        ``sequence`` and ``position`` are accepted for the engine's calling
        convention; the value depends only on ``state`` and ``length``.
        """
        model.evaluate(state, length, result)

    def feature_count(self) -> int:
        return self.config.feature_count

    def feature_name(self, model: TrainedStateLength, index: int) -> str:
        return model.feature_name(index)

    def cache_strategy(self) -> CacheStrategy:
        return CacheStrategy.LENGTH_FUNCTION

    def __repr__(self) -> str:
        return f"{type(self).__name__}(config={self.config!r})"
