#!/usr/bin/env python3
"""
Adaptive CGAN training on MNIST.

Trains D until it is stable, then G until it fools D up to a tightening goal,
alternating for a fixed number of outer iterations. Writes per-iteration
sample grids, statistics logs, the run configuration and the three model
archives into the output directory.

Usage:
    # Full run with default hyperparameters
    python training/train_cgan.py --iterations 5000 --out trainingProcess

    # Short run with smaller check window and checkpoints
    python training/train_cgan.py --iterations 50 --check_interval 200 \
        --checkpoint_interval 10

    # Older stopping rule for D (threshold on fake confidence)
    python training/train_cgan.py --d_stop_rule threshold
"""

import os
import sys
import argparse
import json
import logging
import time
from datetime import datetime

import torch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.mnist import mnist_cgan_builder
from training.config import ExponentialSchedule, HyperParameters, TrainingConfig
from training.trainer import AdaptiveTrainer
from utils.data import mnist_iterator


def setup_logging(output_dir: str, use_tensorboard: bool = False):
    """
    Setup logging to file and optionally TensorBoard.

    Args:
        output_dir: Directory to save logs
        use_tensorboard: If True, also log to TensorBoard

    Returns:
        Tuple of (logger, tensorboard_writer or None)
    """
    # Handlers go on the root logger so models.* and training.* records are captured
    root = logging.getLogger()
    root.setLevel(logging.INFO)

    # Remove existing handlers
    root.handlers = []

    # File handler
    log_file = os.path.join(output_dir, f"train_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log")
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.INFO)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    # Formatter
    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    logger = logging.getLogger("train_cgan")

    # TensorBoard
    writer = None
    if use_tensorboard:
        try:
            from torch.utils.tensorboard import SummaryWriter
            tb_dir = os.path.join(output_dir, "tensorboard")
            writer = SummaryWriter(tb_dir)
            logger.info(f"TensorBoard logging enabled. Run: tensorboard --logdir {tb_dir}")
        except ImportError:
            logger.warning("TensorBoard not available. Install with: pip install tensorboard")

    logger.info(f"Logging to {log_file}")
    return logger, writer


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Train a conditional GAN on MNIST with adaptive phase lengths")

    # Hyperparameters
    parser.add_argument("--label_amplifier", type=float, default=7.0,
                        help="Scale applied to one-hot labels")
    parser.add_argument("--real_confidence", type=float, default=0.9,
                        help="Minimum average D confidence on real samples")
    parser.add_argument("--fake_identity", type=float, default=0.6,
                        help="Initial slack between real_confidence and G's goal")
    parser.add_argument("--fake_identity_gamma", type=float, default=0.9965400695800781,
                        help="Per-iteration decay of the fake identity slack")
    parser.add_argument("--fake_identity_half_life", type=int, default=None,
                        help="Iterations for the slack to halve (overrides --fake_identity_gamma)")
    parser.add_argument("--lr", type=float, default=2e-4,
                        help="Adam learning rate")
    parser.add_argument("--beta1", type=float, default=0.5,
                        help="Adam beta1")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed (defaults to current time)")

    # Run constants
    parser.add_argument("--iterations", type=int, default=5000,
                        help="Number of outer D/G iterations")
    parser.add_argument("--batch_size", type=int, default=32,
                        help="Batch size")
    parser.add_argument("--noise_dim", type=int, default=100,
                        help="Noise vector dimension")
    parser.add_argument("--check_interval", type=int, default=500,
                        help="Fit calls between stopping checks")
    parser.add_argument("--delta_epsilon", type=float, default=5e-4,
                        help="Max change of D's fake average to count as stable")
    parser.add_argument("--d_stop_rule", choices=["delta", "threshold"], default="delta",
                        help="Stopping rule for the discriminator phase")
    parser.add_argument("--max_d_fit_calls", type=int, default=200_000,
                        help="Phase D fit call cap per iteration")
    parser.add_argument("--max_g_fit_calls", type=int, default=200_000,
                        help="Phase G fit call cap per iteration")

    # Data and output
    parser.add_argument("--data_root", type=str, default="./data",
                        help="Root directory for MNIST data")
    parser.add_argument("--no_binarize", action="store_true",
                        help="Keep grayscale pixels instead of binarizing")
    parser.add_argument("--eval", action="store_true",
                        help="Evaluate on the test split after every iteration")
    parser.add_argument("--out", type=str, default="trainingProcess",
                        help="Output directory")
    parser.add_argument("--sample_interval", type=int, default=1,
                        help="Save a sample grid every N iterations (0 disables)")
    parser.add_argument("--checkpoint_interval", type=int, default=0,
                        help="Save the model every N iterations (0 disables)")
    parser.add_argument("--use_tensorboard", action="store_true",
                        help="Enable TensorBoard logging")
    parser.add_argument("--no_progress", action="store_true",
                        help="Disable the progress bar")

    return parser.parse_args(argv)


def build_run_config(args, device: str = "cpu"):
    """
    Hyperparameters and run constants from parsed command line arguments.

    Returns:
        Tuple of (HyperParameters, TrainingConfig)
    """
    if args.fake_identity_half_life is not None:
        schedule = ExponentialSchedule.from_half_life(args.fake_identity, args.fake_identity_half_life)
    else:
        schedule = ExponentialSchedule(args.fake_identity, args.fake_identity_gamma)

    hp = HyperParameters(
        label_amplifier=args.label_amplifier,
        real_confidence=args.real_confidence,
        fake_identity_schedule=schedule,
        learning_rate=args.lr,
        adam_beta1=args.beta1,
        seed=args.seed if args.seed is not None else int(time.time() * 1000),
    )
    config = TrainingConfig(
        noise_dim=args.noise_dim,
        batch_size=args.batch_size,
        iterations=args.iterations,
        check_interval=args.check_interval,
        delta_epsilon=args.delta_epsilon,
        d_stop_rule=args.d_stop_rule,
        max_d_fit_calls=args.max_d_fit_calls,
        max_g_fit_calls=args.max_g_fit_calls,
        output_dir=args.out,
        sample_interval=args.sample_interval,
        checkpoint_interval=args.checkpoint_interval,
        device=device,
        show_progress=not args.no_progress,
        data_root=args.data_root,
        binarize=not args.no_binarize,
    )
    return hp, config


def main(argv=None):
    args = parse_args(argv)

    device = "cuda" if torch.cuda.is_available() else "cpu"
    os.makedirs(args.out, exist_ok=True)

    # Setup logging
    logger, tb_writer = setup_logging(args.out, args.use_tensorboard)

    hp, config = build_run_config(args, device)

    # Save hyperparameters
    info = {
        "hyperparameters": hp.to_dict(),
        "training": config.to_dict(),
        "timestamp": datetime.now().isoformat(),
    }
    with open(os.path.join(args.out, "info.json"), "w") as f:
        json.dump(info, f, indent=2)
    logger.info(f"Saved configuration to {os.path.join(args.out, 'info.json')}")

    triple = mnist_cgan_builder(
        noise_dim=config.noise_dim,
        label_dim=config.label_dim,
        pic_height=config.pic_height,
        pic_width=config.pic_width,
        learning_rate=hp.learning_rate,
        beta1=hp.adam_beta1,
        seed=hp.seed,
    ).build(device=device)

    data = mnist_iterator(train=True, batch_size=config.batch_size, seed=hp.seed,
                          data_root=args.data_root, binarize=config.binarize)
    eval_data = None
    if args.eval:
        eval_data = mnist_iterator(train=False, batch_size=config.batch_size, seed=hp.seed,
                                   data_root=args.data_root, binarize=config.binarize)

    logger.info(f"Starting training for {config.iterations} iterations on {device}...")
    trainer = AdaptiveTrainer(triple, data, hp, config, eval_data=eval_data, writer=tb_writer)
    history = trainer.run()

    skipped = history.non_converged
    if skipped:
        logger.warning(f"{len(skipped)} iteration(s) hit a fit call cap before converging")
    logger.info(f"Training complete! Models saved to {history.save_path}")
    if tb_writer is not None:
        tb_writer.close()


if __name__ == "__main__":
    main()
