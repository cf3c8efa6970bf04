r"""Segment-length distributions and their estimators.

Two length models are provided, both fitted from raw segment lengths:

- :class:`ExponentialLength`: :math:`p(x) = \lambda e^{-\lambda x}`, the
  maximum-likelihood fit is :math:`\lambda = 1 / \bar{x}`.
- :class:`GammaMixtureLength`: a two-component mixture of Gamma densities
  fitted by Expectation-Maximization.

EM on a Gamma mixture is prone to one degeneracy: a component collapses onto a
set of identical lengths, its variance goes to zero and the likelihood becomes
unbounded. :func:`fit_gamma_mixture` guards against this in three ways:

1. Pseudo-observations at 90%, 95%, 105% and 110% of the sample median are
   added to the data, so every component sees spread around the bulk.
2. Component shapes are clamped to ``[min_shape, max_shape]`` and mixture
   weights are floored at ``min_weight``.
3. :func:`fit_length_model` falls back to an exponential fit when all samples
   are identical (e.g. fixed-width intergenic padding in training examples).

Densities are continuous; scoring integer lengths is a discrete approximation,
so summing ``exp(log_prob(k))`` over ``k = 1, 2, ...`` is close to but not
exactly one.

Example usage:
    >>> from torch_interval13.mixture import fit_length_model
    >>> model = fit_length_model([48, 52, 50, 490, 510, 505])
    >>> model.log_density(50)
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

import torch
from torch import Tensor

from .validation import validate_samples

__all__ = [
    "EMConfig",
    "LengthModel",
    "ExponentialLength",
    "GammaMixtureLength",
    "fit_exponential",
    "fit_gamma_mixture",
    "fit_length_model",
]

DTYPE = torch.float64

Samples = Union[Tensor, list[int], list[float], tuple]


@dataclass(frozen=True)
class EMConfig:
    """Parameters of the Gamma-mixture EM estimator.

    Args:
        max_iter (int): Maximum number of EM iterations. Default: ``200``
        tol (float): Stop when the change of the mean log-likelihood between
            iterations is at most ``tol * max(1, |previous|)``, i.e. an absolute
            test while the log-likelihood is below 1 in magnitude and a relative
            one above. Default: ``1e-8``
        prior_fractions (tuple[float, ...]): Pseudo-observations added at these
            multiples of the sample median. Default: ``(0.90, 0.95, 1.05, 1.10)``
        min_shape (float): Lower clamp for component shapes. Default: ``1e-3``
        max_shape (float): Upper clamp for component shapes; bounds how peaked a
            component may become. Default: ``1e4``
        min_weight (float): Floor for mixture weights. Default: ``1e-6``
        newton_steps (int): Newton iterations for the shape update. Default: ``20``
    """

    max_iter: int = 200
    tol: float = 1e-8
    prior_fractions: tuple[float, ...] = (0.90, 0.95, 1.05, 1.10)
    min_shape: float = 1e-3
    max_shape: float = 1e4
    min_weight: float = 1e-6
    newton_steps: int = 20

    def __post_init__(self):
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")
        if self.tol < 0:
            raise ValueError(f"tol must be non-negative, got {self.tol}")
        if not self.prior_fractions:
            raise ValueError("prior_fractions must not be empty")
        if any(f <= 0 for f in self.prior_fractions):
            raise ValueError(f"prior_fractions must be positive, got {self.prior_fractions}")
        if not 0 < self.min_shape < self.max_shape:
            raise ValueError(
                f"need 0 < min_shape < max_shape, got {self.min_shape}, {self.max_shape}"
            )
        if not 0 < self.min_weight < 0.5:
            raise ValueError(f"min_weight must be in (0, 0.5), got {self.min_weight}")
        if self.newton_steps < 1:
            raise ValueError(f"newton_steps must be >= 1, got {self.newton_steps}")


class LengthModel(ABC):
    """Base class for fitted segment-length distributions.

    Instances are immutable once fitted.
    """

    @abstractmethod
    def log_prob(self, lengths: Union[Tensor, float]) -> Tensor:
        """Log-density at ``lengths`` (float64 tensor, same shape as input)."""
        raise NotImplementedError

    @property
    @abstractmethod
    def mean(self) -> float:
        raise NotImplementedError

    def log_density(self, length: float) -> float:
        """Log-density at a single length, as a Python float."""
        return self.log_prob(torch.tensor(float(length), dtype=DTYPE)).item()


@dataclass(frozen=True)
class ExponentialLength(LengthModel):
    """Exponential length distribution: log p(x) = log(rate) - rate * x."""

    rate: float

    def log_prob(self, lengths: Union[Tensor, float]) -> Tensor:
        x = torch.as_tensor(lengths, dtype=DTYPE)
        return math.log(self.rate) - self.rate * x

    @property
    def mean(self) -> float:
        return 1.0 / self.rate


@dataclass(frozen=True)
class GammaMixtureLength(LengthModel):
    r"""Mixture of Gamma densities with shape/rate parameterization.

    .. math::
        p(x) = \sum_j w_j \frac{r_j^{k_j}}{\Gamma(k_j)} x^{k_j - 1} e^{-r_j x}
    """

    weights: tuple[float, ...]
    shapes: tuple[float, ...]
    rates: tuple[float, ...]

    def log_prob(self, lengths: Union[Tensor, float]) -> Tensor:
        x = torch.as_tensor(lengths, dtype=DTYPE)
        weights = torch.tensor(self.weights, dtype=DTYPE)
        shapes = torch.tensor(self.shapes, dtype=DTYPE)
        rates = torch.tensor(self.rates, dtype=DTYPE)
        # (..., J)
        log_comp = torch.log(weights) + _gamma_log_prob(x.unsqueeze(-1), shapes, rates)
        return torch.logsumexp(log_comp, dim=-1)

    @property
    def component_means(self) -> tuple[float, ...]:
        return tuple(k / r for k, r in zip(self.shapes, self.rates, strict=True))

    @property
    def mean(self) -> float:
        return sum(w * m for w, m in zip(self.weights, self.component_means, strict=True))


def _gamma_log_prob(x: Tensor, shape: Tensor, rate: Tensor) -> Tensor:
    # log Gamma(x; k, r) = k log r - lgamma(k) + (k - 1) log x - r x
    return shape * torch.log(rate) - torch.lgamma(shape) + (shape - 1) * torch.log(x) - rate * x


def _as_samples(samples: Samples, name: str = "samples") -> Tensor:
    x = torch.as_tensor(samples, dtype=DTYPE).reshape(-1)
    validate_samples(x.tolist(), name=name)
    return x


def fit_exponential(samples: Samples) -> ExponentialLength:
    """Maximum-likelihood exponential fit: rate = 1 / mean."""
    x = _as_samples(samples)
    return ExponentialLength(rate=1.0 / x.mean().item())


def _solve_shape(s: Tensor, config: EMConfig) -> Tensor:
    r"""Solve :math:`\log k - \psi(k) = s` for the Gamma shape :math:`k`.

    ``s = log(mean) - mean(log x)`` is non-negative by Jensen's inequality and
    zero only when all (weighted) samples coincide, where the clamp applies.
    """
    s = s.clamp(min=1e-12)
    # Closed-form starting point (Minka, "Estimating a Gamma distribution")
    k = (3 - s + torch.sqrt((s - 3) ** 2 + 24 * s)) / (12 * s)
    k = k.clamp(config.min_shape, config.max_shape)

    for _ in range(config.newton_steps):
        f = torch.log(k) - torch.special.digamma(k) - s
        df = 1.0 / k - torch.special.polygamma(1, k)
        step = f / df
        k_new = (k - step).clamp(config.min_shape, config.max_shape)
        if torch.all((k_new - k).abs() <= 1e-10 * k):
            k = k_new
            break
        k = k_new
    return k


def _augment(x: Tensor, config: EMConfig) -> Tensor:
    """Append pseudo-observations at ``config.prior_fractions`` times the median of ``x``.

    The median averages the two middle values for an even count.
    """
    median = torch.quantile(x, 0.5)
    return torch.cat([x, median * torch.tensor(config.prior_fractions, dtype=DTYPE)])


def _initialize(data: Tensor, config: EMConfig) -> tuple[Tensor, Tensor, Tensor]:
    """Split sorted data at the midpoint and moment-match one component per half."""
    sorted_data, _ = torch.sort(data)
    n = sorted_data.shape[0]
    halves = (sorted_data[: n // 2], sorted_data[n // 2 :])

    weights, shapes, rates = [], [], []
    for half in halves:
        mean = half.mean()
        var = half.var(correction=0)
        if var > 0:
            shape = (mean**2 / var).clamp(config.min_shape, config.max_shape)
        else:
            shape = torch.tensor(config.max_shape, dtype=DTYPE)
        weights.append(half.shape[0] / n)
        shapes.append(shape)
        rates.append(shape / mean)

    return torch.tensor(weights, dtype=DTYPE), torch.stack(shapes), torch.stack(rates)


def _e_step(
    data: Tensor, weights: Tensor, shapes: Tensor, rates: Tensor
) -> tuple[Tensor, float]:
    """Return responsibilities (N, J) and the mean log-likelihood."""
    log_comp = torch.log(weights) + _gamma_log_prob(data.unsqueeze(1), shapes, rates)  # (N, J)
    log_norm = torch.logsumexp(log_comp, dim=1, keepdim=True)  # (N, 1)
    resp = torch.exp(log_comp - log_norm)
    return resp, log_norm.mean().item()


def _m_step(
    data: Tensor,
    log_data: Tensor,
    resp: Tensor,
    shapes: Tensor,
    rates: Tensor,
    config: EMConfig,
) -> tuple[Tensor, Tensor, Tensor]:
    n = data.shape[0]
    nk = resp.sum(dim=0)  # (J,)

    weights = (nk / n).clamp(min=config.min_weight)
    weights = weights / weights.sum()

    # Components that lost all responsibility keep their previous parameters
    empty = nk <= config.min_weight * n
    nk_safe = nk.clamp(min=torch.finfo(DTYPE).tiny)
    mean = ((resp * data.unsqueeze(1)).sum(dim=0) / nk_safe).clamp(min=torch.finfo(DTYPE).tiny)
    mean_log = (resp * log_data.unsqueeze(1)).sum(dim=0) / nk_safe

    new_shapes = _solve_shape(torch.log(mean) - mean_log, config)
    new_rates = new_shapes / mean

    shapes = torch.where(empty, shapes, new_shapes)
    rates = torch.where(empty, rates, new_rates)
    return weights, shapes, rates


def fit_gamma_mixture(samples: Samples, config: Optional[EMConfig] = None) -> GammaMixtureLength:
    r"""Fit a two-component Gamma mixture by EM.

    Pseudo-observations at ``config.prior_fractions`` times the sample median
    are appended to the raw samples before fitting. Samples must not be
    filtered beforehand; the median is taken over all of them.

    Args:
        samples: Raw positive segment lengths, at least two.
        config (EMConfig, optional): Estimator parameters. Default: ``EMConfig()``

    Returns:
        GammaMixtureLength: The fitted mixture.
    """
    if config is None:
        config = EMConfig()
    x = _as_samples(samples)
    if x.shape[0] < 2:
        raise ValueError(f"fit_gamma_mixture needs at least 2 samples, got {x.shape[0]}")

    data = _augment(x, config)
    log_data = torch.log(data)

    weights, shapes, rates = _initialize(data, config)
    prev_ll = None
    for _ in range(config.max_iter):
        resp, ll = _e_step(data, weights, shapes, rates)
        weights, shapes, rates = _m_step(data, log_data, resp, shapes, rates, config)
        if prev_ll is not None and abs(ll - prev_ll) <= config.tol * max(1.0, abs(prev_ll)):
            break
        prev_ll = ll

    return GammaMixtureLength(
        weights=tuple(weights.tolist()),
        shapes=tuple(shapes.tolist()),
        rates=tuple(rates.tolist()),
    )


def fit_length_model(
    samples: Samples,
    force_exponential: bool = False,
    config: Optional[EMConfig] = None,
) -> LengthModel:
    """Fit a length model to raw segment lengths.

    Args:
        samples: Raw positive segment lengths.
        force_exponential (bool, optional): Fit a single exponential instead of
            a Gamma mixture. Default: ``False``
        config (EMConfig, optional): Estimator parameters for the mixture fit.

    Returns:
        LengthModel: :class:`ExponentialLength` when forced, when there is a
        single sample, or when all samples are identical (zero variance);
        otherwise :class:`GammaMixtureLength`.

    Raises:
        DurationConfigurationError: If samples are empty or not all positive.
    """
    x = _as_samples(samples)
    if force_exponential or x.shape[0] < 2 or bool((x == x[0]).all()):
        return fit_exponential(x)
    return fit_gamma_mixture(x, config)
