"""Tests for the state-length log-probability feature.

Covers:
- Routing of all 13 states to the category models
- Fail-fast handling of non-positive lengths and non-finite values
- Shared vs per-category feature indexing and names
- Exponential / mixture selection and the no-intergenic option
- Degenerate training data
"""

import math
import warnings

import pytest
import torch

from torch_interval13 import (
    FEATURE_NAME,
    CacheStrategy,
    Category,
    CategoryModels,
    DurationConfigurationError,
    DurationInvariantError,
    ExponentialLength,
    FeatureList,
    GammaMixtureLength,
    ModelTopology,
    PositiveLogProbWarning,
    StateLengthConfig,
    StateLengthLogprob,
    TrainedStateLength,
    category_of,
    state_run_lengths,
)


def trained_with(models, **config):
    return TrainedStateLength(start_index=0, config=StateLengthConfig(**config), models=models)


@pytest.fixture
def distinct_models():
    """Exponential models with a different rate per category."""
    return CategoryModels(
        intergenic=ExponentialLength(rate=0.001),
        exon=ExponentialLength(rate=0.01),
        intron=ExponentialLength(rate=0.1),
    )


class TestRouting:
    """Each state is scored by its own category's model."""

    @pytest.mark.parametrize("state", range(13))
    def test_state_uses_category_model(self, distinct_models, state):
        model = trained_with(distinct_models, multiple_features=True)
        result = FeatureList()
        model.evaluate(state, 25, result)

        category = category_of(state)
        assert result.indices == [category.ordinal]
        assert result.values[0] == distinct_models[category].log_density(25)

    def test_single_write_per_call(self, distinct_models):
        model = trained_with(distinct_models)
        result = FeatureList()
        for state in range(13):
            model.evaluate(state, 10, result)
        assert len(result) == 13


class TestLengthValidation:
    """Non-positive lengths are fatal for every state."""

    @pytest.mark.parametrize("state", range(13))
    @pytest.mark.parametrize("length", [0, -1, -1000])
    def test_non_positive_length_raises(self, distinct_models, state, length):
        model = trained_with(distinct_models)
        result = FeatureList()
        with pytest.raises(DurationInvariantError, match="must be positive"):
            model.evaluate(state, length, result)
        assert len(result) == 0

    def test_non_positive_length_raises_with_no_intergenic(self, distinct_models):
        """Length is checked before the intergenic short-circuit."""
        model = trained_with(distinct_models, no_intergenic=True)
        with pytest.raises(DurationInvariantError):
            model.evaluate(0, 0, FeatureList())

    def test_unmapped_state_raises(self, distinct_models):
        with pytest.raises(DurationConfigurationError):
            trained_with(distinct_models).evaluate(13, 10, FeatureList())


class TestValueValidation:
    """Non-finite values are fatal; positive values warn."""

    def test_negative_infinity_raises(self):
        dead = GammaMixtureLength(weights=(0.0, 0.0), shapes=(2.0, 2.0), rates=(1.0, 1.0))
        models = CategoryModels(intergenic=dead, exon=dead, intron=dead)
        result = FeatureList()
        with pytest.raises(DurationInvariantError, match="-inf"):
            trained_with(models).evaluate(1, 10, result)
        assert len(result) == 0

    def test_nan_raises(self):
        nan_model = ExponentialLength(rate=float("nan"))
        models = CategoryModels(intergenic=nan_model, exon=nan_model, intron=nan_model)
        with pytest.raises(DurationInvariantError, match="NaN"):
            trained_with(models).evaluate(4, 10, FeatureList())

    def test_positive_log_prob_warns_and_writes(self):
        # A spike of sd 0.02 around length 2 has density ~10 there
        peaked = GammaMixtureLength(weights=(0.5, 0.5), shapes=(1e4, 1.0), rates=(5e3, 1.0))
        models = CategoryModels(intergenic=peaked, exon=peaked, intron=peaked)
        result = FeatureList()
        with pytest.warns(PositiveLogProbWarning):
            trained_with(models).evaluate(2, 2, result)
        assert result.values[0] > 0

    def test_log_prob_does_not_write(self, distinct_models):
        model = trained_with(distinct_models)
        assert model.log_prob(5, 30) == pytest.approx(math.log(0.1) - 3.0)


class TestFeatureIndexing:
    """Shared vs per-category weights."""

    def test_multiple_features_offsets(self, distinct_models):
        model = TrainedStateLength(
            start_index=7,
            config=StateLengthConfig(multiple_features=True),
            models=distinct_models,
        )
        assert model.feature_count == 3
        for state, expected in [(0, 7), (1, 8), (9, 8), (4, 9), (12, 9)]:
            result = FeatureList()
            model.evaluate(state, 40, result)
            assert result.indices == [expected]

    def test_shared_feature_offset(self, distinct_models):
        model = TrainedStateLength(
            start_index=7, config=StateLengthConfig(), models=distinct_models
        )
        assert model.feature_count == 1
        for state in range(13):
            result = FeatureList()
            model.evaluate(state, 40, result)
            assert result.indices == [7]

    def test_multiple_feature_names(self, distinct_models):
        model = TrainedStateLength(
            start_index=4,
            config=StateLengthConfig(multiple_features=True),
            models=distinct_models,
        )
        names = [model.feature_name(i) for i in (4, 5, 6)]
        assert names == ["Intergenic lengths", "Exon lengths", "Intron lengths"]

    def test_single_feature_name(self, distinct_models):
        model = TrainedStateLength(
            start_index=4, config=StateLengthConfig(), models=distinct_models
        )
        assert model.feature_name(4) == FEATURE_NAME

    @pytest.mark.parametrize("index", [3, 7])
    def test_feature_name_out_of_range(self, distinct_models, index):
        model = TrainedStateLength(
            start_index=4,
            config=StateLengthConfig(multiple_features=True),
            models=distinct_models,
        )
        with pytest.raises(IndexError):
            model.feature_name(index)


class TestNoIntergenic:
    """no_intergenic suppresses only intergenic writes."""

    @pytest.mark.parametrize("length", [1, 10, 200, 5000])
    def test_intergenic_not_written(self, distinct_models, length):
        model = trained_with(distinct_models, no_intergenic=True)
        result = FeatureList()
        model.evaluate(0, length, result)
        assert len(result) == 0

    def test_exon_unaffected(self, distinct_models):
        suppressed = trained_with(distinct_models, no_intergenic=True)
        plain = trained_with(distinct_models)
        a, b = FeatureList(), FeatureList()
        suppressed.evaluate(1, 120, a)
        plain.evaluate(1, 120, b)
        assert a.indices == b.indices
        assert a.values == b.values


class TestTraining:
    """End-to-end training from labeled sequences."""

    def test_default_modes(self, corpus, topology):
        model = StateLengthLogprob().train(0, topology, corpus)
        assert isinstance(model.models.intergenic, ExponentialLength)
        assert isinstance(model.models.exon, GammaMixtureLength)
        assert isinstance(model.models.intron, GammaMixtureLength)

    def test_force_exponential_closed_form(self, corpus, topology):
        feature = StateLengthLogprob(StateLengthConfig(force_exponential=True))
        model = feature.train(0, topology, corpus)
        assert all(isinstance(m, ExponentialLength) for m in model.models)

        runs = state_run_lengths(corpus, 13)
        exon_runs = [x for s in (1, 2, 3, 7, 8, 9) for x in runs[s]]
        mean = sum(exon_runs) / len(exon_runs)
        expected = -math.log(mean) - 120 / mean
        assert model.log_prob(3, 120) == pytest.approx(expected, rel=1e-9)

    @pytest.mark.parametrize(
        "flag, category",
        [("exon_exponential", Category.EXON), ("intron_exponential", Category.INTRON)],
    )
    def test_single_category_flag(self, corpus, topology, flag, category):
        model = StateLengthLogprob(StateLengthConfig(**{flag: True})).train(0, topology, corpus)
        for c in Category:
            exponential = c in (category, Category.INTERGENIC)
            expected = ExponentialLength if exponential else GammaMixtureLength
            assert isinstance(model.models[c], expected)

    def test_exon_profile_multimodal(self, corpus, topology):
        model = StateLengthLogprob().train(0, topology, corpus)
        lp = {x: model.log_prob(1, x) for x in (50, 250, 500)}
        assert lp[50] > lp[250] < lp[500]

    def test_intergenic_profile_decreasing(self, corpus, topology):
        model = StateLengthLogprob().train(0, topology, corpus)
        values = [model.log_prob(0, x) for x in range(1, 3001, 50)]
        assert all(a > b for a, b in zip(values, values[1:]))

    def test_two_exon_populations(self, corpus, topology):
        model = StateLengthLogprob().train(0, topology, corpus)
        low, high = sorted(model.models.exon.component_means)
        assert high - low >= 100

    def test_constant_intergenic_length(self, make_corpus, topology):
        """Every intergenic run of length 200 still yields a usable model."""
        corpus = make_corpus(intergenic_length=200)
        model = StateLengthLogprob().train(0, topology, corpus)
        assert model.models.intergenic.mean == pytest.approx(200)
        for length in (1, 200, 10000):
            assert math.isfinite(model.log_prob(0, length))

    def test_constant_exon_length(self, make_corpus, topology):
        """Zero-variance exon data falls back to an exponential."""
        corpus = make_corpus(exon_means=(150.0, 150.0), exon_cv=0.0)
        model = StateLengthLogprob().train(0, topology, corpus)
        assert isinstance(model.models.exon, ExponentialLength)
        assert math.isfinite(model.log_prob(1, 150))

    def test_train_from_lists(self, topology):
        seq = [0] * 30 + [1] * 10 + [4] * 20 + [2] * 12 + [0] * 5
        model = StateLengthLogprob().train(2, topology, [seq, seq[::-1]])
        assert model.start_index == 2
        assert math.isfinite(model.log_prob(1, 11))

    @pytest.mark.parametrize("num_states", [3, 12, 14])
    def test_wrong_topology_raises(self, corpus, num_states):
        with pytest.raises(DurationConfigurationError, match="must be 13"):
            StateLengthLogprob().train(0, ModelTopology(num_states=num_states), corpus)

    def test_negative_start_index_raises(self, corpus, topology):
        with pytest.raises(ValueError, match="starting_index"):
            StateLengthLogprob().train(-1, topology, corpus)

    def test_missing_category_raises(self, topology):
        seq = torch.tensor([0] * 10 + [1] * 5 + [0] * 3)
        with pytest.raises(DurationConfigurationError, match="no intron runs"):
            StateLengthLogprob().train(0, topology, [seq])


class TestDeterminism:
    """Repeated evaluation is bit-identical."""

    def test_repeated_evaluate(self, corpus, topology):
        model = StateLengthLogprob().train(0, topology, corpus)
        first = [model.log_prob(s, 137) for s in range(13)]
        for _ in range(3):
            assert [model.log_prob(s, 137) for s in range(13)] == first

    def test_retraining(self, corpus, topology):
        feature = StateLengthLogprob()
        a = feature.train(0, topology, corpus)
        b = feature.train(0, topology, corpus)
        assert a == b


class TestFeatureSurface:
    """Engine-facing methods of StateLengthLogprob."""

    def test_evaluate_at_ignores_sequence_and_position(self, corpus, topology):
        feature = StateLengthLogprob(StateLengthConfig(multiple_features=True))
        model = feature.train(10, topology, corpus)
        a, b = FeatureList(), FeatureList()
        feature.evaluate_at(model, corpus[0], 5, 80, 6, a)
        feature.evaluate_at(model, corpus[1], 300, 80, 6, b)
        assert a.indices == b.indices == [12]
        assert a.values == b.values

    def test_feature_count(self):
        assert StateLengthLogprob().feature_count() == 1
        multi = StateLengthLogprob(StateLengthConfig(multiple_features=True))
        assert multi.feature_count() == 3

    def test_feature_name(self, corpus, topology):
        feature = StateLengthLogprob(StateLengthConfig(multiple_features=True))
        model = feature.train(0, topology, corpus)
        assert feature.feature_name(model, 1) == "Exon lengths"

    def test_cache_strategy(self):
        assert StateLengthLogprob().cache_strategy() is CacheStrategy.LENGTH_FUNCTION

    def test_config_is_frozen(self):
        config = StateLengthConfig()
        with pytest.raises(AttributeError):
            config.force_exponential = True


class TestLengthTable:
    """Precomputed (K, 13) feature values."""

    def test_matches_log_prob(self, corpus, topology):
        model = StateLengthLogprob().train(0, topology, corpus)
        table = model.length_table(600)
        assert table.shape == (600, 13)
        assert table.dtype == torch.float64
        for state, length in [(0, 1), (1, 50), (4, 300), (12, 600)]:
            assert table[length - 1, state].item() == pytest.approx(
                model.log_prob(state, length), rel=1e-12
            )

    def test_states_in_category_share_columns(self, corpus, topology):
        table = StateLengthLogprob().train(0, topology, corpus).length_table(100)
        assert torch.equal(table[:, 1], table[:, 9])
        assert torch.equal(table[:, 4], table[:, 10])

    def test_no_intergenic_column_zero(self, corpus, topology):
        feature = StateLengthLogprob(StateLengthConfig(no_intergenic=True))
        table = feature.train(0, topology, corpus).length_table(50)
        assert torch.equal(table[:, 0], torch.zeros(50, dtype=torch.float64))
        assert (table[:, 1] != 0).all()

    def test_all_finite(self, corpus, topology):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", PositiveLogProbWarning)
            table = StateLengthLogprob().train(0, topology, corpus).length_table(5000)
        assert torch.isfinite(table).all()

    def test_invalid_max_duration(self, distinct_models):
        with pytest.raises(ValueError, match="max_duration"):
            trained_with(distinct_models).length_table(0)
