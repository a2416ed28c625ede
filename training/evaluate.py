"""
Out-of-loop diagnostic: how confident is D on real vs. generated samples?
"""

from typing import Optional, Tuple

import torch

from models.cgan import ModelTriple
from models.nodes import DISCRIMINATOR_LABEL_INPUT_NAME, DISCRIMINATOR_PIC_INPUT_NAME
from utils.data import LoopingIterator

from .config import HyperParameters, TrainingConfig
from .sampling import generate, sample_noise


def evaluate(
    triple: ModelTriple,
    test_data: LoopingIterator,
    hp: HyperParameters,
    config: TrainingConfig,
    rng: Optional[torch.Generator] = None,
) -> Tuple[float, float]:
    """
    Score one test batch and a matching generated batch with D.

    Synchronizes the triple first so G reflects the latest GAN state. No
    parameters are trained.

    Returns:
        Tuple of (mean D confidence on real samples, mean D confidence on generated samples)
    """
    triple.synchronize()
    real, labels = test_data.next_batch()
    real = real.to(config.device)
    labels = (labels * hp.label_amplifier).to(config.device)
    b = real.size(0)

    fake = generate(triple.generator, sample_noise(b, config.noise_dim, rng, config.device), labels)
    scores = triple.discriminator.output({
        DISCRIMINATOR_PIC_INPUT_NAME: torch.cat([real, fake]),
        DISCRIMINATOR_LABEL_INPUT_NAME: torch.cat([labels, labels]),
    })
    return scores[:b].mean().item(), scores[b:].mean().item()
