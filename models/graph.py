"""
Trainable computation graph assembled from named node specs.

A ``TrainableGraph`` owns its own copy of every node module, so the
generator, discriminator and combined graphs never alias parameters. Nodes
are addressed by name for feed-forward activations and for parameter
copies between graphs.
"""

import copy
import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import torch
import torch.nn as nn

from .errors import InvalidTopology, MissingInput, MissingOutput
from .nodes import NodeKind, NodeSpec, topological_order

logger = logging.getLogger(__name__)

OptimizerFactory = Callable[[Iterable[nn.Parameter]], torch.optim.Optimizer]


def default_optimizer(params: Iterable[nn.Parameter]) -> torch.optim.Optimizer:
    return torch.optim.Adam(params, lr=2e-4, betas=(0.5, 0.999))


def weights_init(m: nn.Module) -> None:
    """
    Initialize network weights (Xavier weights, zero biases).

    Applies to Linear and Conv layers; other modules keep their own
    initialization.
    """
    classname = m.__class__.__name__
    if classname.find('Linear') != -1 or classname.find('Conv') != -1:
        if getattr(m, 'weight', None) is not None:
            nn.init.xavier_uniform_(m.weight.data)
        if getattr(m, 'bias', None) is not None:
            nn.init.constant_(m.bias.data, 0)


class FrozenNode(nn.Module):
    """
    Wrap a layer so it is not updated by its graph's optimizer.

    Gradients still flow through the wrapped layer to upstream nodes. The
    wrapped layer always runs in eval mode, so dropout is inactive.
    """

    def __init__(self, module: nn.Module):
        super().__init__()
        self.module = module
        for p in self.module.parameters():
            p.requires_grad_(False)
        self.module.eval()

    def train(self, mode: bool = True) -> "FrozenNode":
        super().train(mode)
        self.module.eval()
        return self

    def forward(self, *inputs: torch.Tensor) -> torch.Tensor:
        return self.module(*inputs)


class TrainableGraph(nn.Module):
    """
    Directed acyclic graph of named nodes with one optimized output.

    Args:
        specs: Node specs; definitions are deep-copied into this graph
        input_names: Names of the tensors fed to the graph
        output_name: Node whose activation is the graph output
        frozen: Names of layer nodes to wrap in ``FrozenNode``
        optimizer: Factory building the optimizer from the trainable parameters
        loss_fn: Loss between the output activation and the fit targets
        grad_clip: Optional L2 norm threshold for gradient clipping
        seed: Seed used by ``initialize``
    """

    def __init__(
        self,
        specs: Sequence[NodeSpec],
        input_names: Sequence[str],
        output_name: str,
        frozen: Iterable[str] = (),
        optimizer: Optional[OptimizerFactory] = None,
        loss_fn: Optional[nn.Module] = None,
        grad_clip: Optional[float] = None,
        seed: int = 0,
    ):
        super().__init__()
        self.input_names = tuple(input_names)
        self.output_name = output_name
        self.seed = seed
        self.grad_clip = grad_clip
        self.frozen = frozenset(frozen)

        self.order = [spec.name for spec in topological_order(specs, self.input_names)]
        self.node_inputs = {spec.name: tuple(spec.inputs) for spec in specs}
        self.layer_names = [spec.name for spec in specs if spec.kind is NodeKind.LAYER]
        if output_name not in self.node_inputs:
            raise InvalidTopology(f"Graph has no node named '{output_name}'")
        unknown_frozen = self.frozen - set(self.layer_names)
        if unknown_frozen:
            raise InvalidTopology(f"Cannot freeze unknown layer(s) {sorted(unknown_frozen)}")

        self.nodes = nn.ModuleDict()
        for spec in specs:
            module = copy.deepcopy(spec.definition)
            if spec.name in self.frozen:
                module = FrozenNode(module)
            self.nodes[spec.name] = module

        self.loss_fn = loss_fn if loss_fn is not None else nn.BCELoss()
        self.optimizer_factory = optimizer or default_optimizer
        self.optimizer = self.optimizer_factory(self.trainable_parameters())

    def trainable_parameters(self) -> List[nn.Parameter]:
        return [p for p in self.parameters() if p.requires_grad]

    def initialize(self) -> None:
        """Re-initialize all layers from the graph seed and reset optimizer state."""
        with torch.random.fork_rng(devices=[]):
            torch.manual_seed(self.seed)
            for name in self.order:
                self.node(name).apply(weights_init)
        self.optimizer = self.optimizer_factory(self.trainable_parameters())

    def node(self, name: str) -> nn.Module:
        """Return the module for ``name``, unwrapping frozen layers."""
        if name not in self.nodes:
            raise KeyError(f"No node named '{name}'")
        module = self.nodes[name]
        return module.module if isinstance(module, FrozenNode) else module

    def forward(self, inputs: Mapping[str, torch.Tensor]) -> Dict[str, torch.Tensor]:
        """
        Run every node in topological order.

        Returns:
            Activations of every node, keyed by name, plus the inputs themselves
        """
        missing = [name for name in self.input_names if name not in inputs]
        if missing:
            raise MissingInput(f"Missing graph input(s) {missing}")
        activations = {name: inputs[name] for name in self.input_names}
        for name in self.order:
            args = [activations[i] for i in self.node_inputs[name]]
            activations[name] = self.nodes[name](*args)
        return activations

    def feed_forward(self, inputs: Mapping[str, torch.Tensor], training: bool = False) -> Dict[str, torch.Tensor]:
        """Forward pass in train or eval mode; eval passes build no autograd graph."""
        was_training = self.training
        self.train(training)
        try:
            if training:
                return self(inputs)
            with torch.no_grad():
                return self(inputs)
        finally:
            self.train(was_training)

    @staticmethod
    def get_output(activations: Mapping[str, torch.Tensor], name: str) -> torch.Tensor:
        if name not in activations:
            raise MissingOutput(f"No layer named {name}")
        return activations[name]

    def output(self, inputs: Mapping[str, torch.Tensor]) -> torch.Tensor:
        """Inference-only output activation."""
        return self.get_output(self.feed_forward(inputs, training=False), self.output_name)

    def fit(self, inputs: Mapping[str, torch.Tensor], targets: Mapping[str, torch.Tensor]) -> float:
        """
        One optimization step on a batch.

        Args:
            inputs: Named input tensors
            targets: Named target tensors; must contain the graph output name

        Returns:
            Loss value before the step
        """
        target = self.get_output(targets, self.output_name)
        self.train()
        self.optimizer.zero_grad()
        prediction = self.get_output(self(inputs), self.output_name)
        loss = self.loss_fn(prediction, target)
        loss.backward()
        if self.grad_clip is not None:
            nn.utils.clip_grad_norm_(self.trainable_parameters(), self.grad_clip)
        self.optimizer.step()
        return loss.item()

    def get_parameters(self, name: str) -> Dict[str, torch.Tensor]:
        """Detached copy of a node's parameters and buffers."""
        return {k: v.detach().clone() for k, v in self.node(name).state_dict().items()}

    def set_parameters(self, name: str, values: Mapping[str, torch.Tensor]) -> None:
        """Copy values into a node's parameters and buffers in place."""
        self.node(name).load_state_dict(values)

    def parameter_count(self) -> int:
        return sum(p.numel() for p in self.parameters())

    def save(self, path: str, include_optimizer_state: bool = False) -> None:
        archive = {
            "nodes": list(self.order),
            "seed": self.seed,
            "state_dict": self.state_dict(),
        }
        if include_optimizer_state:
            archive["optimizer"] = self.optimizer.state_dict()
        torch.save(archive, path)
        logger.debug(f"Saved graph ({len(self.order)} nodes) to {path}")

    def load_state(self, path: str, map_location=None) -> None:
        """Restore a graph written by ``save``; optimizer state is restored when present."""
        archive = torch.load(path, map_location=map_location)
        if archive["nodes"] != list(self.order):
            raise InvalidTopology(f"Archive {path} was saved from a graph with different nodes")
        self.load_state_dict(archive["state_dict"])
        if "optimizer" in archive:
            self.optimizer.load_state_dict(archive["optimizer"])
