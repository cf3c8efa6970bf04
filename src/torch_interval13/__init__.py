"""
torch-interval13: Segment-length feature for the interval13 semi-Markov CRF

This package scores segments of the 13-state interval gene model (intergenic,
three exon frames and three intron phases on each strand) by the log-density of
their length. Lengths are pooled into intergenic / exon / intron categories and
fitted with an exponential or a two-component Gamma mixture trained by EM.

Key Features:
- Deterministic, regularized Gamma-mixture EM with degenerate-data fallbacks
- Fail-fast validation of lengths and log-probabilities used inside Viterbi /
  forward-backward
- One shared or three per-category feature weights
- (K, 13) duration bias tables for semi-CRF heads
"""

from .categories import NUM_STATES, STATE_CATEGORIES, Category, category_of, states_in
from .duration import DurationDistribution, LengthDuration
from .feature import FEATURE_NAME, StateLengthConfig, StateLengthLogprob, TrainedStateLength
from .helpers import CacheStrategy, FeatureList, ModelTopology, state_run_lengths
from .mixture import (
    EMConfig,
    ExponentialLength,
    GammaMixtureLength,
    LengthModel,
    fit_exponential,
    fit_gamma_mixture,
    fit_length_model,
)
from .trainer import CategoryModels, exponential_categories, fit_category_models, pool_by_category
from .validation import (
    DurationConfigurationError,
    DurationInvariantError,
    PositiveLogProbWarning,
)

__version__ = "0.1.0"

__all__ = [
    # Feature API
    "StateLengthLogprob",
    "StateLengthConfig",
    "TrainedStateLength",
    "FEATURE_NAME",
    # Categories
    "NUM_STATES",
    "STATE_CATEGORIES",
    "Category",
    "category_of",
    "states_in",
    # Length models
    "EMConfig",
    "LengthModel",
    "ExponentialLength",
    "GammaMixtureLength",
    "fit_exponential",
    "fit_gamma_mixture",
    "fit_length_model",
    # Training
    "CategoryModels",
    "pool_by_category",
    "exponential_categories",
    "fit_category_models",
    # Engine seams
    "FeatureList",
    "ModelTopology",
    "CacheStrategy",
    "state_run_lengths",
    # Neural network modules
    "DurationDistribution",
    "LengthDuration",
    # Errors
    "DurationConfigurationError",
    "DurationInvariantError",
    "PositiveLogProbWarning",
]
