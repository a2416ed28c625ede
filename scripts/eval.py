#!/usr/bin/env python3
"""
Evaluate a trained CGAN run.

Rebuilds the three graphs from the run's ``info.json``, loads the saved
archives and reports D's average confidence on real test samples vs.
generated samples over a number of batches. Optionally writes a per-class
sample grid.

Usage:
    python scripts/eval.py --run trainingProcess --batches 20 --grid eval_grid.png
"""

import os
import sys
import argparse
import json

import torch
from tqdm import tqdm

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.mnist import mnist_cgan_builder
from training.config import ExponentialSchedule, HyperParameters, TrainingConfig
from training.evaluate import evaluate
from training.sampling import class_labels, generate, sample_noise
from utils.data import mnist_iterator
from utils.images import save_sample_grid


def load_run_config(run_dir: str):
    """
    Read hyperparameters and training config from a run directory.

    Args:
        run_dir: Directory containing info.json

    Returns:
        Tuple of (HyperParameters, TrainingConfig)
    """
    with open(os.path.join(run_dir, "info.json"), "r") as f:
        info = json.load(f)
    hp_dict = dict(info["hyperparameters"])
    hp_dict["fake_identity_schedule"] = ExponentialSchedule(**hp_dict["fake_identity_schedule"])
    return HyperParameters(**hp_dict), TrainingConfig(**info["training"])


def main():
    parser = argparse.ArgumentParser(description="Evaluate a saved CGAN run")
    parser.add_argument("--run", type=str, required=True,
                        help="Run directory written by training/train_cgan.py")
    parser.add_argument("--model_dir", type=str, default=None,
                        help="Directory with the model archives (default: <run>/save)")
    parser.add_argument("--batches", type=int, default=10,
                        help="Number of test batches to score")
    parser.add_argument("--data_root", type=str, default=None,
                        help="Override the run's MNIST data root")
    parser.add_argument("--grid", type=str, default=None,
                        help="Optional path for a per-class sample grid PNG")
    args = parser.parse_args()

    device = "cuda" if torch.cuda.is_available() else "cpu"
    hp, config = load_run_config(args.run)
    config.device = device

    triple = mnist_cgan_builder(
        noise_dim=config.noise_dim,
        label_dim=config.label_dim,
        pic_height=config.pic_height,
        pic_width=config.pic_width,
        learning_rate=hp.learning_rate,
        beta1=hp.adam_beta1,
        seed=hp.seed,
    ).build(device=device)
    model_dir = args.model_dir or os.path.join(args.run, "save")
    print(f"Loading models from {model_dir}")
    triple.load(model_dir, map_location=device)

    test_data = mnist_iterator(
        train=False, batch_size=config.batch_size, seed=hp.seed,
        data_root=args.data_root or config.data_root, binarize=config.binarize,
    )
    rng = torch.Generator().manual_seed(hp.seed)

    real_sum = fake_sum = 0.0
    for _ in tqdm(range(args.batches), desc="Eval"):
        real_avg, fake_avg = evaluate(triple, test_data, hp, config, rng)
        real_sum += real_avg
        fake_sum += fake_avg

    print(f"D confidence on real samples: {real_sum / args.batches:.4f}")
    print(f"D confidence on generated samples: {fake_sum / args.batches:.4f}")

    if args.grid:
        labels = class_labels(config.label_dim, hp.label_amplifier, device)
        samples = generate(triple.generator, sample_noise(config.label_dim, config.noise_dim, rng, device), labels)
        save_sample_grid(samples, args.grid, config.pic_height, config.pic_width, nrow=config.grid_columns)
        print(f"Saved sample grid to {args.grid}")


if __name__ == "__main__":
    main()
