"""
Duration bias modules for Semi-Markov CRF heads.

A semi-CRF head adds a duration bias of shape (K, C) to every segment score,
where row ``k - 1`` scores segments of length ``k``. :class:`LengthDuration`
builds that bias from a trained state-length feature: the fitted log-densities
are computed once for every (length, state) pair and scaled by one learnable
weight per feature (shared, or one each for intergenic, exon and intron).

Example usage:
    >>> from torch_interval13 import LengthDuration, StateLengthLogprob
    >>>
    >>> model = StateLengthLogprob().train(0, topology, sequences)
    >>> dur = LengthDuration(model, max_duration=2000)
    >>> bias = dur()  # Returns (2000, 13) tensor
"""

from abc import ABC, abstractmethod

import torch
import torch.nn as nn
from torch import Tensor

from .categories import NUM_STATES, STATE_CATEGORIES
from .feature import TrainedStateLength


class DurationDistribution(nn.Module, ABC):
    """Base class for duration distributions.

    Duration distributions produce a bias tensor of shape (K, C) where:
    - K is the maximum segment duration
    - C is the number of classes/labels

    The bias is added to segment scores in the Semi-Markov CRF, effectively
    implementing a prior over segment durations for each class.
    """

    def __init__(self, max_duration: int, num_classes: int):
        super().__init__()
        self.max_duration = max_duration
        self.num_classes = num_classes

    @abstractmethod
    def forward(self) -> Tensor:
        """Compute duration bias tensor.

        Returns:
            Tensor of shape (K, C) containing log-space duration biases.
        """
        raise NotImplementedError


class LengthDuration(DurationDistribution):
    """Duration bias from a trained state-length feature.

    bias[k - 1, s] = w[f(s)] * log p(k | category(s))

    where ``f(s)`` is the feature offset of state ``s`` relative to the model's
    start index: always 0 in shared mode, the category ordinal otherwise.

    Args:
        model (TrainedStateLength): Trained feature.
        max_duration (int): Maximum segment duration K.
        init_weight (float, optional): Initial feature weight. Default: ``1.0``
        learn_weights (bool, optional): Register weights as parameters.
            Default: ``True``
    """

    def __init__(
        self,
        model: TrainedStateLength,
        max_duration: int,
        init_weight: float = 1.0,
        learn_weights: bool = True,
    ):
        super().__init__(max_duration, NUM_STATES)
        self.feature_count = model.feature_count

        # Fixed (K, C) table; only the weights are trained
        table = model.length_table(max_duration).to(torch.get_default_dtype())
        self.register_buffer("length_log_prob", table)

        offsets = [model.feature_index(c) - model.start_index for c in STATE_CATEGORIES]
        self.register_buffer("feature_of_state", torch.tensor(offsets, dtype=torch.long))

        weights = torch.full((model.feature_count,), float(init_weight))
        if learn_weights:
            self.weights = nn.Parameter(weights)
        else:
            self.register_buffer("weights", weights)

    def forward(self) -> Tensor:
        # (K, C) * (C,) -> (K, C)
        return self.length_log_prob * self.weights[self.feature_of_state]
