"""
Pytest configuration for torch-interval13 tests.

Synthetic corpora follow the interval13 topology: each training sequence is one
gene laid out as

    intergenic -> exon -> intron -> exon

with exon and intron states cycling through their six strand/frame variants so
that runs of the same state never touch.
"""

import pytest
import torch

EXON_STATES = (1, 2, 3, 7, 8, 9)
INTRON_STATES = (4, 5, 6, 10, 11, 12)


def build_sequences(runs_per_sequence):
    """Turn lists of (state, length) runs into per-position label tensors."""
    return [
        torch.cat([torch.full((length,), state, dtype=torch.long) for state, length in runs])
        for runs in runs_per_sequence
    ]


def _normal_length(mean, std, generator):
    if std == 0:
        return max(1, round(mean))
    value = torch.normal(mean, std, size=(1,), generator=generator).round().item()
    return max(1, int(value))


@pytest.fixture
def make_corpus():
    """Factory for synthetic interval13 corpora with known length populations.

    Returns a function that generates ``num_genes`` label sequences. Within each
    gene the first exon length is drawn around ``exon_means[0]`` and the second
    around ``exon_means[1]``, so exon lengths form two equal-sized clusters.
    """

    def _create(
        num_genes=60,
        exon_means=(50.0, 500.0),
        exon_cv=0.1,
        intron_mean=300.0,
        intron_std=40.0,
        intergenic_mean=500.0,
        intergenic_length=None,
        seed=0,
    ):
        g = torch.Generator().manual_seed(seed)
        runs_per_sequence = []
        for i in range(num_genes):
            if intergenic_length is not None:
                inter = intergenic_length
            else:
                draw = torch.empty(1).exponential_(1.0 / intergenic_mean, generator=g)
                inter = int(draw.item()) + 1
            first = _normal_length(exon_means[0], exon_cv * exon_means[0], g)
            second = _normal_length(exon_means[1], exon_cv * exon_means[1], g)
            intron = _normal_length(intron_mean, intron_std, g)
            runs_per_sequence.append(
                [
                    (0, inter),
                    (EXON_STATES[i % 6], first),
                    (INTRON_STATES[i % 6], intron),
                    (EXON_STATES[(i + 1) % 6], second),
                ]
            )
        return build_sequences(runs_per_sequence)

    return _create


@pytest.fixture
def topology():
    from torch_interval13 import ModelTopology

    return ModelTopology(num_states=13)


@pytest.fixture
def corpus(make_corpus):
    """Default two-population corpus."""
    return make_corpus()
