"""
Noise and label batches fed to the generator.
"""

from typing import Optional

import torch

from models.nodes import GENERATOR_LABEL_INPUT_NAME, GENERATOR_NOISE_INPUT_NAME, GENERATOR_OUTPUT_NAME


def sample_noise(n: int, noise_dim: int, rng: Optional[torch.Generator] = None, device="cpu") -> torch.Tensor:
    """Uniform [0, 1) noise of shape (n, noise_dim)."""
    return torch.rand(n, noise_dim, generator=rng).to(device)


def random_class_labels(
    n: int, label_dim: int, amplifier: float, rng: Optional[torch.Generator] = None, device="cpu"
) -> torch.Tensor:
    """One amplified one-hot label per row, with the class drawn uniformly (not from the dataset)."""
    classes = torch.randint(0, label_dim, (n,), generator=rng)
    labels = torch.zeros(n, label_dim)
    labels[torch.arange(n), classes] = amplifier
    return labels.to(device)


def class_labels(label_dim: int, amplifier: float, device="cpu") -> torch.Tensor:
    """Amplified one-hot labels for classes 0..label_dim-1, one row each."""
    return (torch.eye(label_dim) * amplifier).to(device)


def generate(generator, noise: torch.Tensor, labels: torch.Tensor) -> torch.Tensor:
    """Inference-only generator pass."""
    activations = generator.feed_forward(
        {GENERATOR_NOISE_INPUT_NAME: noise, GENERATOR_LABEL_INPUT_NAME: labels}, training=False
    )
    return generator.get_output(activations, GENERATOR_OUTPUT_NAME)
