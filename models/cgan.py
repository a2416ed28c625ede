"""
Conditional GAN as three trainable graphs: generator, discriminator, combined.

- The discriminator (D) is trained directly on real + generated batches.
- The combined graph (GAN) is G wired into a frozen copy of D; training it
  only updates the G nodes.
- The standalone generator (G) is never trained. It is refreshed from the
  combined graph and used for sampling only.

Training flow for one outer iteration:
    1. G generates samples, D is trained on them together with real samples
    2. D's parameters are copied into the frozen D block of GAN
    3. GAN is trained, updating only its G part
    4. GAN's G part is copied into G
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional, Sequence

import torch.nn as nn

from .errors import SynchronizationError
from .graph import OptimizerFactory, TrainableGraph
from .nodes import (
    DISCRIMINATOR_INPUTS,
    DISCRIMINATOR_OUTPUT_NAME,
    GENERATOR_INPUTS,
    GENERATOR_OUTPUT_NAME,
    NodeKind,
    NodeSpec,
    validate_specs,
)

logger = logging.getLogger(__name__)

GAN_ARCHIVE = "model_gan.pt"
DISCRIMINATOR_ARCHIVE = "model_discriminator.pt"
GENERATOR_ARCHIVE = "model_generator.pt"


@dataclass
class ModelTriple:
    """Generator, discriminator and combined graphs of one training run."""

    generator: TrainableGraph
    discriminator: TrainableGraph
    combined: TrainableGraph

    @property
    def discriminator_layers(self):
        return self.discriminator.layer_names

    @property
    def generator_layers(self):
        return self.generator.layer_names

    def synchronize(self) -> None:
        """
        Copy D into the frozen D block of GAN, then GAN's G part into G.

        D -> GAN must run before GAN is trained; GAN -> G must run after GAN
        is trained and before G is used for inference.

        Raises:
            SynchronizationError: If the layer names or shapes of the two sides differ
        """
        for name in self.discriminator_layers:
            if name not in self.combined.frozen:
                raise SynchronizationError(f"Combined graph has no frozen discriminator layer '{name}'")
        extra = self.combined.frozen - set(self.discriminator_layers)
        if extra:
            raise SynchronizationError(f"Combined graph has frozen layer(s) {sorted(extra)} missing from D")
        for name in self.generator_layers:
            if name not in self.combined.nodes or name in self.combined.frozen:
                raise SynchronizationError(f"Combined graph has no trainable generator layer '{name}'")

        for name in self.discriminator_layers:
            self._copy(self.discriminator, self.combined, name)
        for name in self.generator_layers:
            self._copy(self.combined, self.generator, name)

    @staticmethod
    def _copy(source: TrainableGraph, target: TrainableGraph, name: str) -> None:
        try:
            target.set_parameters(name, source.get_parameters(name))
        except RuntimeError as e:
            raise SynchronizationError(f"Cannot copy layer '{name}': {e}") from e

    def to(self, device) -> "ModelTriple":
        self.generator.to(device)
        self.discriminator.to(device)
        self.combined.to(device)
        return self

    def save(self, path: str) -> None:
        """
        Save all three graphs into ``path``.

        GAN and D are saved with optimizer state. G is saved without it, since
        its parameters are always derived from GAN.
        """
        os.makedirs(path, exist_ok=True)
        self.combined.save(os.path.join(path, GAN_ARCHIVE), include_optimizer_state=True)
        self.discriminator.save(os.path.join(path, DISCRIMINATOR_ARCHIVE), include_optimizer_state=True)
        self.generator.save(os.path.join(path, GENERATOR_ARCHIVE), include_optimizer_state=False)
        logger.info(f"Saved generator, discriminator and GAN to {path}")

    def load(self, path: str, map_location=None) -> None:
        """Restore graphs written by ``save`` into this (already built) triple."""
        self.combined.load_state(os.path.join(path, GAN_ARCHIVE), map_location=map_location)
        self.discriminator.load_state(os.path.join(path, DISCRIMINATOR_ARCHIVE), map_location=map_location)
        self.generator.load_state(os.path.join(path, GENERATOR_ARCHIVE), map_location=map_location)
        logger.info(f"Loaded generator, discriminator and GAN from {path}")


def build(
    generator_specs: Sequence[NodeSpec],
    discriminator_specs: Sequence[NodeSpec],
    seed: int,
    generator_optimizer: Optional[OptimizerFactory] = None,
    discriminator_optimizer: Optional[OptimizerFactory] = None,
    generator_grad_clip: Optional[float] = None,
    discriminator_grad_clip: Optional[float] = None,
    loss_fn: Optional[nn.Module] = None,
    device="cpu",
) -> ModelTriple:
    """
    Build and initialize the generator, discriminator and combined graphs.

    All specs are validated before any graph is constructed.

    Raises:
        InvalidTopology: If a spec breaks the naming or wiring rules
    """
    validate_specs(generator_specs, discriminator_specs)

    generator = TrainableGraph(
        generator_specs,
        input_names=GENERATOR_INPUTS,
        output_name=GENERATOR_OUTPUT_NAME,
        optimizer=generator_optimizer,
        loss_fn=loss_fn,
        grad_clip=generator_grad_clip,
        seed=seed,
    )
    discriminator = TrainableGraph(
        discriminator_specs,
        input_names=DISCRIMINATOR_INPUTS,
        output_name=DISCRIMINATOR_OUTPUT_NAME,
        optimizer=discriminator_optimizer,
        loss_fn=loss_fn,
        grad_clip=discriminator_grad_clip,
        seed=seed,
    )
    # G is trained through GAN, so GAN takes G's optimizer settings
    combined = TrainableGraph(
        list(generator_specs) + list(discriminator_specs),
        input_names=GENERATOR_INPUTS,
        output_name=DISCRIMINATOR_OUTPUT_NAME,
        frozen=[s.name for s in discriminator_specs if s.kind is NodeKind.LAYER],
        optimizer=generator_optimizer,
        loss_fn=loss_fn,
        grad_clip=generator_grad_clip,
        seed=seed,
    )

    triple = ModelTriple(generator=generator, discriminator=discriminator, combined=combined).to(device)
    for graph in (triple.generator, triple.discriminator, triple.combined):
        graph.initialize()
    logger.info(
        f"Built CGAN: G {generator.parameter_count():,} params, "
        f"D {discriminator.parameter_count():,} params"
    )
    return triple
