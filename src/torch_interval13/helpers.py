from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

import torch
from torch import Tensor

LabelSequence = Union[Tensor, Sequence[int]]


class CacheStrategy(Enum):
    """How an inference engine may memoize a feature's values.

    ``LENGTH_FUNCTION``: the value depends only on ``(state, length)``, so a
    ``(max_duration, num_states)`` table can be computed once.
    """

    LENGTH_FUNCTION = "length_function"


@dataclass(frozen=True)
class ModelTopology:
    """Minimal model description: the number of hidden states."""

    num_states: int


@dataclass
class FeatureList:
    """Sparse accumulator of (feature index, value) pairs for one evaluation.

    Features write into it with :meth:`add_feature`; the engine reads the pairs
    back.
    """

    indices: list[int] = field(default_factory=list)
    values: list[float] = field(default_factory=list)

    def add_feature(self, index: int, value: float) -> None:
        self.indices.append(index)
        self.values.append(value)

    def __len__(self) -> int:
        return len(self.indices)


def state_run_lengths(sequences: Iterable[LabelSequence], num_states: int) -> list[list[int]]:
    r"""Decompose label sequences into maximal runs and collect run lengths per state.

    Args:
        sequences: Iterable of 1D label sequences (tensors or lists of ints).
            A 2D tensor is treated as a batch of equal-length sequences.
        num_states (int): Number of states; labels must be in ``[0, num_states)``.

    Returns:
        list[list[int]]: ``runs[s]`` is the ordered list of run lengths observed
        for state ``s``, in corpus order.

    Examples::

        >>> state_run_lengths([[0, 0, 1, 1, 1, 0]], num_states=2)
        [[2, 1], [3]]
    """
    runs: list[list[int]] = [[] for _ in range(num_states)]

    for i, seq in enumerate(sequences):
        labels = torch.as_tensor(seq, dtype=torch.long).reshape(-1)
        T = labels.shape[0]
        if T == 0:
            continue

        min_val = labels.min().item()
        max_val = labels.max().item()
        if min_val < 0 or max_val >= num_states:
            raise ValueError(
                f"sequence {i} labels must be in [0, {num_states}), "
                f"got range [{min_val}, {max_val}]"
            )

        # A run ends wherever the label changes, and at the end of the sequence
        changes = labels[:-1] != labels[1:]  # (T-1,)
        boundaries = torch.where(changes)[0] + 1
        starts = torch.cat([torch.zeros(1, dtype=torch.long), boundaries])
        ends = torch.cat([boundaries, torch.tensor([T], dtype=torch.long)])

        for state, length in zip(labels[starts].tolist(), (ends - starts).tolist(), strict=True):
            runs[state].append(length)

    return runs
