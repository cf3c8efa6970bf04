#!/usr/bin/env python3
"""Example: Training the interval13 state-length feature on synthetic genes.

This example demonstrates the full life cycle of the feature:
1. Train per-category length models from labeled sequences
2. Score segments into a FeatureList the way an inference engine would
3. Build a (K, 13) duration bias for a semi-CRF head

Usage:
    python train_length_feature.py
    python train_length_feature.py --genes 500 --multiple-features
    python train_length_feature.py --force-exponential
"""

import argparse

import torch

from torch_interval13 import (
    FeatureList,
    LengthDuration,
    ModelTopology,
    StateLengthConfig,
    StateLengthLogprob,
)

EXON_STATES = (1, 2, 3, 7, 8, 9)
INTRON_STATES = (4, 5, 6, 10, 11, 12)


def synthetic_genes(num_genes: int, seed: int) -> list[torch.Tensor]:
    """intergenic -> exon -> intron -> exon, with short and long exon populations."""
    g = torch.Generator().manual_seed(seed)

    def draw(mean, std):
        return max(1, int(torch.normal(mean, std, size=(1,), generator=g).round().item()))

    sequences = []
    for i in range(num_genes):
        inter = int(torch.empty(1).exponential_(1 / 800, generator=g).item()) + 1
        runs = [
            (0, inter),
            (EXON_STATES[i % 6], draw(60.0, 8.0)),
            (INTRON_STATES[i % 6], draw(400.0, 80.0)),
            (EXON_STATES[(i + 1) % 6], draw(450.0, 60.0)),
        ]
        sequences.append(torch.cat([torch.full((n,), s, dtype=torch.long) for s, n in runs]))
    return sequences


def main():
    parser = argparse.ArgumentParser(description="Train the interval13 state-length feature")
    parser.add_argument("--genes", type=int, default=200)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--max-duration", type=int, default=1000)
    parser.add_argument("--force-exponential", action="store_true")
    parser.add_argument("--multiple-features", action="store_true")
    parser.add_argument("--no-intergenic", action="store_true")
    args = parser.parse_args()

    config = StateLengthConfig(
        force_exponential=args.force_exponential,
        multiple_features=args.multiple_features,
        no_intergenic=args.no_intergenic,
    )
    feature = StateLengthLogprob(config)
    model = feature.train(0, ModelTopology(num_states=13), synthetic_genes(args.genes, args.seed))

    print(f"Feature count: {feature.feature_count()}")
    for index in range(model.start_index, model.start_index + model.feature_count):
        print(f"  [{index}] {feature.feature_name(model, index)}")
    for name, length_model in zip(("intergenic", "exon", "intron"), model.models):
        print(f"{name:>10}: {length_model}")

    result = FeatureList()
    for state, length in [(0, 500), (1, 60), (4, 400), (8, 450)]:
        feature.evaluate_at(model, None, 0, length, state, result)
    for index, value in zip(result.indices, result.values):
        print(f"feature[{index}] += {value:.3f}")

    bias = LengthDuration(model, max_duration=args.max_duration)()
    print(f"Duration bias: {tuple(bias.shape)}, range [{bias.min():.2f}, {bias.max():.2f}]")


if __name__ == "__main__":
    main()
