"""Error classes and validation utilities for the state-length feature.

Failures fall into two fatal classes and one tolerated anomaly:

- :class:`DurationConfigurationError`: the model topology or the training data
  cannot support the feature (wrong state count, unmapped state, no samples).
- :class:`DurationInvariantError`: a value reached the scorer that upstream code
  must never produce (non-positive segment length, non-finite log-probability).
- :class:`PositiveLogProbWarning`: a finite log-probability above zero. Lengths
  are scored by evaluating a continuous density at integers, so values slightly
  above zero are expected for sharply peaked models.

Functions:
    validate_num_states: Validate the topology's state count.
    validate_segment_length: Validate a segment length before scoring.
    validate_log_prob: Validate an evaluated log-probability.
    validate_samples: Validate raw duration samples before fitting.
"""

import math
import numbers
import warnings
from collections.abc import Sequence

__all__ = [
    "DurationConfigurationError",
    "DurationInvariantError",
    "PositiveLogProbWarning",
    "validate_num_states",
    "validate_segment_length",
    "validate_log_prob",
    "validate_samples",
]


class DurationConfigurationError(ValueError):
    """Topology or training data is incompatible with the feature."""


class DurationInvariantError(ValueError):
    """A scoring invariant was violated; signals a defect upstream."""


class PositiveLogProbWarning(UserWarning):
    """A state-length log-probability evaluated above zero."""


def validate_num_states(num_states: int, expected: int, name: str = "num_states") -> None:
    r"""validate_num_states(num_states, expected, name='num_states') -> None

    Validates that the model topology has exactly ``expected`` states.

    Raises:
        DurationConfigurationError: If ``num_states != expected``.

    Examples::

        >>> validate_num_states(13, 13)  # OK
        >>> validate_num_states(9, 13)
        DurationConfigurationError: num_states must be 13 for the interval13 model, got 9
    """
    if num_states != expected:
        raise DurationConfigurationError(
            f"{name} must be {expected} for the interval13 model, got {num_states}"
        )


def validate_segment_length(length: int, name: str = "length") -> None:
    r"""validate_segment_length(length, name='length') -> None

    Validates that a segment length is a positive integer.

    Raises:
        DurationInvariantError: If ``length`` is not an int or is :math:`\leq 0`.
    """
    if isinstance(length, bool) or not isinstance(length, numbers.Integral):
        raise DurationInvariantError(f"{name} must be an int, got {type(length).__name__}")
    if length <= 0:
        raise DurationInvariantError(f"{name} must be positive, got {length}")


def validate_log_prob(value: float, state: int, length: int) -> None:
    r"""validate_log_prob(value, state, length) -> None

    Validates an evaluated state-length log-probability.

    Raises:
        DurationInvariantError: If ``value`` is NaN or infinite.

    Warns:
        PositiveLogProbWarning: If ``value`` is finite and greater than zero.
    """
    if math.isnan(value):
        raise DurationInvariantError(f"log-probability is NaN for state={state}, length={length}")
    if math.isinf(value):
        raise DurationInvariantError(
            f"log-probability is {value} for state={state}, length={length}"
        )
    if value > 0:
        warnings.warn(
            f"state-length log-probability {value:.4g} > 0 for state={state}, length={length}; "
            f"densities are evaluated at integer lengths and are not renormalized",
            PositiveLogProbWarning,
            stacklevel=3,
        )


def validate_samples(samples: Sequence[float], name: str = "samples") -> None:
    r"""validate_samples(samples, name='samples') -> None

    Validates raw duration samples before fitting a length model.

    Raises:
        DurationConfigurationError: If ``samples`` is empty or has a
          non-positive or non-finite value.
    """
    if len(samples) == 0:
        raise DurationConfigurationError(f"{name} is empty; cannot fit a length model")
    bad = [x for x in samples if not math.isfinite(x) or x <= 0]
    if bad:
        raise DurationConfigurationError(
            f"{name} must be finite and positive, got {len(bad)} invalid value(s), e.g. {bad[0]}"
        )
