"""
Declarative node specifications for the generator and discriminator graphs.

A CGAN is described by two lists of ``NodeSpec``: one for the generator and
one for the discriminator. Naming rules tie the three graphs together:

- Generator and combined graphs take ``noise`` and ``label`` as inputs.
- The generator's output node is named ``pic``, which is also the
  discriminator's sample input, so the combined graph wires G into D by name.
- The discriminator and combined graphs output ``output``.
- Every other generator node name starts with ``G-``; every other
  discriminator node name starts with ``D-``.

Each spec also carries an explicit namespace tag, and the prefix is checked
against that tag, so a node cannot silently land in the wrong sub-graph.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

import torch.nn as nn

from .errors import InvalidTopology


GENERATOR_NOISE_INPUT_NAME = "noise"
GENERATOR_LABEL_INPUT_NAME = "label"
GENERATOR_OUTPUT_NAME = "pic"
GENERATOR_NODE_PREFIX = "G-"

DISCRIMINATOR_PIC_INPUT_NAME = GENERATOR_OUTPUT_NAME
DISCRIMINATOR_LABEL_INPUT_NAME = GENERATOR_LABEL_INPUT_NAME
DISCRIMINATOR_OUTPUT_NAME = "output"
DISCRIMINATOR_NODE_PREFIX = "D-"

GENERATOR_INPUTS = (GENERATOR_NOISE_INPUT_NAME, GENERATOR_LABEL_INPUT_NAME)
DISCRIMINATOR_INPUTS = (DISCRIMINATOR_PIC_INPUT_NAME, DISCRIMINATOR_LABEL_INPUT_NAME)

RESERVED_NAMES = (
    GENERATOR_NOISE_INPUT_NAME,
    GENERATOR_LABEL_INPUT_NAME,
    GENERATOR_OUTPUT_NAME,
    DISCRIMINATOR_OUTPUT_NAME,
)


class Namespace(Enum):
    GENERATOR = "generator"
    DISCRIMINATOR = "discriminator"

    @property
    def prefix(self) -> str:
        if self is Namespace.GENERATOR:
            return GENERATOR_NODE_PREFIX
        return DISCRIMINATOR_NODE_PREFIX

    @property
    def output_name(self) -> str:
        if self is Namespace.GENERATOR:
            return GENERATOR_OUTPUT_NAME
        return DISCRIMINATOR_OUTPUT_NAME

    @property
    def input_names(self) -> Tuple[str, ...]:
        if self is Namespace.GENERATOR:
            return GENERATOR_INPUTS
        return DISCRIMINATOR_INPUTS


class NodeKind(Enum):
    LAYER = "layer"    # holds trainable parameters
    VERTEX = "vertex"  # parameterless combinator (merge, stack, reshape)


@dataclass(frozen=True)
class NodeSpec:
    """
    One named node of a generator or discriminator graph.

    Args:
        name: Fully qualified node name (prefix included)
        namespace: Sub-graph the node belongs to
        kind: Layer or vertex
        definition: Module computing the node; deep-copied into every graph
        inputs: Ordered names of the node's inputs
    """

    name: str
    namespace: Namespace
    kind: NodeKind
    definition: nn.Module
    inputs: Tuple[str, ...]

    @property
    def has_parameters(self) -> bool:
        return any(True for _ in self.definition.parameters())


def _check_name(spec: NodeSpec) -> None:
    ns = spec.namespace
    if "." in spec.name or not spec.name:
        raise InvalidTopology(f"Node name '{spec.name}' must be non-empty and must not contain '.'")
    if spec.name in ns.input_names:
        raise InvalidTopology(f"Node name '{spec.name}' collides with a {ns.value} input name")
    if not (spec.name.startswith(ns.prefix) or spec.name == ns.output_name):
        raise InvalidTopology(
            f"{ns.value.capitalize()} {spec.kind.value}s' name should start with '{ns.prefix}', "
            f"except the output {spec.kind.value}, which should be named '{ns.output_name}' "
            f"(got '{spec.name}')"
        )


def _check_definition(spec: NodeSpec) -> None:
    if not isinstance(spec.definition, nn.Module):
        raise InvalidTopology(f"Node '{spec.name}' definition must be a torch.nn.Module")
    if spec.kind is NodeKind.VERTEX and spec.has_parameters:
        raise InvalidTopology(f"Vertex '{spec.name}' must not hold trainable parameters")
    if not spec.inputs:
        raise InvalidTopology(f"Node '{spec.name}' declares no inputs")


def validate_namespace(specs: Sequence[NodeSpec], namespace: Namespace) -> None:
    """
    Check one sub-graph's specs against the naming and wiring rules.

    Raises:
        InvalidTopology: On any violation
    """
    seen = set()
    for spec in specs:
        if spec.namespace is not namespace:
            raise InvalidTopology(
                f"Node '{spec.name}' is tagged {spec.namespace.value} but was supplied as {namespace.value}"
            )
        _check_name(spec)
        _check_definition(spec)
        if spec.name in seen:
            raise InvalidTopology(f"Duplicate node name '{spec.name}'")
        seen.add(spec.name)

    if namespace.output_name not in seen:
        raise InvalidTopology(f"{namespace.value.capitalize()} has no node named '{namespace.output_name}'")

    resolvable = seen | set(namespace.input_names)
    for spec in specs:
        for name in spec.inputs:
            if name not in resolvable:
                raise InvalidTopology(
                    f"Node '{spec.name}' references undeclared input '{name}' in the {namespace.value} graph"
                )

    # raises on cycles
    topological_order(specs, namespace.input_names)


def validate_specs(generator_specs: Sequence[NodeSpec], discriminator_specs: Sequence[NodeSpec]) -> None:
    """Validate both sub-graphs before any graph is constructed."""
    validate_namespace(generator_specs, Namespace.GENERATOR)
    validate_namespace(discriminator_specs, Namespace.DISCRIMINATOR)


def topological_order(specs: Sequence[NodeSpec], input_names: Iterable[str]) -> List[NodeSpec]:
    """
    Order specs so every node comes after the nodes it reads from.

    Declared order breaks ties, so a spec list that is already ordered comes
    back unchanged.

    Raises:
        InvalidTopology: If an input cannot be resolved or the nodes form a cycle
    """
    resolved = set(input_names)
    known = resolved | {spec.name for spec in specs}
    for spec in specs:
        unknown = [i for i in spec.inputs if i not in known]
        if unknown:
            raise InvalidTopology(f"Node '{spec.name}' references undeclared input(s) {unknown}")

    remaining = list(specs)
    ordered: List[NodeSpec] = []
    while remaining:
        for spec in remaining:
            if all(i in resolved for i in spec.inputs):
                break
        else:
            raise InvalidTopology(f"Cycle detected among nodes {[s.name for s in remaining]}")
        remaining.remove(spec)
        ordered.append(spec)
        resolved.add(spec.name)
    return ordered


class NodeSpecBuilder:
    """
    Fluent builder for generator and discriminator node specs.

    Names that are not reserved graph inputs/outputs get the side's prefix
    added, both for the node itself and for the inputs it references, so
    callers write ``"L1"`` and get ``"G-L1"``.

    Example:
        builder = NodeSpecBuilder(seed=42)
        builder.add_generator_vertex("Input", MergeVertex(), "noise", "label")
        builder.add_generator_layer("L1", nn.Sequential(nn.Linear(110, 256), nn.LeakyReLU(0.2)), "Input")
        builder.add_generator_layer("pic", nn.Sequential(nn.Linear(256, 784), nn.Sigmoid()), "L1")
        builder.add_discriminator_vertex("Input", MergeVertex(), "pic", "label")
        builder.add_discriminator_layer("output", nn.Sequential(nn.Linear(794, 1), nn.Sigmoid()), "Input")
        triple = builder.build()
    """

    def __init__(
        self,
        generator_optimizer=None,
        discriminator_optimizer=None,
        generator_grad_clip: Optional[float] = None,
        discriminator_grad_clip: Optional[float] = None,
        seed: int = 1189998819991197253,
    ):
        self.generator_optimizer = generator_optimizer
        self.discriminator_optimizer = discriminator_optimizer
        self.generator_grad_clip = generator_grad_clip
        self.discriminator_grad_clip = discriminator_grad_clip
        self.seed = seed
        self.generator_specs: List[NodeSpec] = []
        self.discriminator_specs: List[NodeSpec] = []

    @staticmethod
    def prepare_name(prefix: str, name: str) -> str:
        """Add prefix unless the name is a reserved graph input or output."""
        return name if name in RESERVED_NAMES else prefix + name

    def _add(self, namespace: Namespace, kind: NodeKind, name: str, definition: nn.Module, inputs) -> "NodeSpecBuilder":
        prefix = namespace.prefix
        spec = NodeSpec(
            name=self.prepare_name(prefix, name),
            namespace=namespace,
            kind=kind,
            definition=definition,
            inputs=tuple(self.prepare_name(prefix, i) for i in inputs),
        )
        target = self.generator_specs if namespace is Namespace.GENERATOR else self.discriminator_specs
        target.append(spec)
        return self

    def add_generator_layer(self, name: str, layer: nn.Module, *inputs: str) -> "NodeSpecBuilder":
        return self._add(Namespace.GENERATOR, NodeKind.LAYER, name, layer, inputs)

    def add_generator_vertex(self, name: str, vertex: nn.Module, *inputs: str) -> "NodeSpecBuilder":
        return self._add(Namespace.GENERATOR, NodeKind.VERTEX, name, vertex, inputs)

    def add_discriminator_layer(self, name: str, layer: nn.Module, *inputs: str) -> "NodeSpecBuilder":
        return self._add(Namespace.DISCRIMINATOR, NodeKind.LAYER, name, layer, inputs)

    def add_discriminator_vertex(self, name: str, vertex: nn.Module, *inputs: str) -> "NodeSpecBuilder":
        return self._add(Namespace.DISCRIMINATOR, NodeKind.VERTEX, name, vertex, inputs)

    def build(self, device="cpu"):
        """Validate the collected specs and build the generator/discriminator/combined triple."""
        from .cgan import build

        return build(
            self.generator_specs,
            self.discriminator_specs,
            seed=self.seed,
            generator_optimizer=self.generator_optimizer,
            discriminator_optimizer=self.discriminator_optimizer,
            generator_grad_clip=self.generator_grad_clip,
            discriminator_grad_clip=self.discriminator_grad_clip,
            device=device,
        )
