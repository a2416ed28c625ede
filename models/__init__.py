"""
Graph models for the conditional GAN.

This package provides:
- Nodes: NodeSpec, NodeSpecBuilder and the naming rules shared by all graphs
- Graph: TrainableGraph assembled from node specs, with frozen-layer support
- CGAN: ModelTriple (generator, discriminator, combined) and its parameter relay
- MNIST: the fully connected MNIST CGAN node specs
"""

from .errors import ConfigurationError, InvalidTopology, MissingInput, MissingOutput, SynchronizationError
from .nodes import Namespace, NodeKind, NodeSpec, NodeSpecBuilder
from .vertices import MergeVertex
from .graph import TrainableGraph, FrozenNode, weights_init
from .cgan import ModelTriple, build
from .mnist import mnist_cgan_builder

__all__ = [
    "ConfigurationError",
    "InvalidTopology",
    "MissingInput",
    "MissingOutput",
    "SynchronizationError",
    "Namespace",
    "NodeKind",
    "NodeSpec",
    "NodeSpecBuilder",
    "MergeVertex",
    "TrainableGraph",
    "FrozenNode",
    "weights_init",
    "ModelTriple",
    "build",
    "mnist_cgan_builder",
]
