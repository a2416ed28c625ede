"""
Adaptive CGAN training.

This package provides:
- config: HyperParameters, ExponentialSchedule and TrainingConfig
- stopping: Phase D / Phase G stopping rules
- trainer: AdaptiveTrainer running the outer D/G alternation
- evaluate: Evaluation on held-out data
- train_cgan: Command line entry point for MNIST training
"""

__all__ = []
