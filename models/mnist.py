"""
Fully connected CGAN for 28x28 MNIST digits.

Generator: (noise ++ label) -> 256 -> 512 -> 1024 -> pixels (sigmoid)
Discriminator: (pixels ++ label) -> 1024 -> 512 -> 256 -> realness (sigmoid),
with dropout 0.3 on every hidden layer.
"""

import torch
import torch.nn as nn

from .nodes import (
    DISCRIMINATOR_LABEL_INPUT_NAME,
    DISCRIMINATOR_OUTPUT_NAME,
    DISCRIMINATOR_PIC_INPUT_NAME,
    GENERATOR_LABEL_INPUT_NAME,
    GENERATOR_NOISE_INPUT_NAME,
    GENERATOR_OUTPUT_NAME,
    NodeSpecBuilder,
)
from .vertices import MergeVertex


def dense(n_in: int, n_out: int, activation: nn.Module, dropout: float = 0.0) -> nn.Sequential:
    layers = [nn.Linear(n_in, n_out), activation]
    if dropout > 0:
        layers.append(nn.Dropout(dropout))
    return nn.Sequential(*layers)


def adam(learning_rate: float, beta1: float, beta2: float = 0.999):
    """Optimizer factory for ``TrainableGraph``."""
    return lambda params: torch.optim.Adam(params, lr=learning_rate, betas=(beta1, beta2))


def mnist_cgan_builder(
    noise_dim: int = 100,
    label_dim: int = 10,
    pic_height: int = 28,
    pic_width: int = 28,
    learning_rate: float = 2e-4,
    beta1: float = 0.5,
    seed: int = 1189998819991197253,
) -> NodeSpecBuilder:
    """
    Node specs of the MNIST CGAN, ready to ``build()``.

    Args:
        noise_dim: Noise vector dimension
        label_dim: Number of classes (one-hot label width)
        pic_height: Image height in pixels
        pic_width: Image width in pixels
        learning_rate: Adam learning rate for both sides
        beta1: Adam beta1 for both sides
        seed: Weight initialization seed shared by all three graphs
    """
    pixels = pic_height * pic_width
    builder = NodeSpecBuilder(
        generator_optimizer=adam(learning_rate, beta1),
        discriminator_optimizer=adam(learning_rate, beta1),
        seed=seed,
    )

    builder.add_generator_vertex("Input", MergeVertex(), GENERATOR_NOISE_INPUT_NAME, GENERATOR_LABEL_INPUT_NAME)
    builder.add_generator_layer("L1", dense(noise_dim + label_dim, 256, nn.LeakyReLU(0.2)), "Input")
    builder.add_generator_layer("L2", dense(256, 512, nn.LeakyReLU(0.2)), "L1")
    builder.add_generator_layer("L3", dense(512, 1024, nn.LeakyReLU(0.2)), "L2")
    builder.add_generator_layer(GENERATOR_OUTPUT_NAME, dense(1024, pixels, nn.Sigmoid()), "L3")

    builder.add_discriminator_vertex(
        "MergedInput", MergeVertex(), DISCRIMINATOR_PIC_INPUT_NAME, DISCRIMINATOR_LABEL_INPUT_NAME
    )
    builder.add_discriminator_layer("L1", dense(pixels + label_dim, 1024, nn.LeakyReLU(0.2), dropout=0.3), "MergedInput")
    builder.add_discriminator_layer("L2", dense(1024, 512, nn.LeakyReLU(0.2), dropout=0.3), "L1")
    builder.add_discriminator_layer("L3", dense(512, 256, nn.LeakyReLU(0.2), dropout=0.3), "L2")
    builder.add_discriminator_layer(DISCRIMINATOR_OUTPUT_NAME, dense(256, 1, nn.Sigmoid()), "L3")
    return builder
