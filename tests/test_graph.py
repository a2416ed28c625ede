"""Tests for models/graph.py: forward passes, fit, frozen layers, parameter access, persistence."""

import pytest
import torch
import torch.nn as nn

from models.errors import InvalidTopology, MissingInput, MissingOutput
from models.graph import FrozenNode, TrainableGraph, weights_init
from models.nodes import DISCRIMINATOR_INPUTS, GENERATOR_INPUTS
from models.vertices import MergeVertex
from conftest import make_tiny_builder


@pytest.fixture
def combined_graph():
    builder = make_tiny_builder()
    graph = TrainableGraph(
        builder.generator_specs + builder.discriminator_specs,
        input_names=GENERATOR_INPUTS,
        output_name="output",
        frozen=["D-L1", "output"],
        seed=5,
    )
    graph.initialize()
    return graph


@pytest.fixture
def discriminator_graph():
    builder = make_tiny_builder()
    graph = TrainableGraph(builder.discriminator_specs, DISCRIMINATOR_INPUTS, "output", seed=5)
    graph.initialize()
    return graph


class TestFeedForward:

    def test_returns_every_activation(self, combined_graph, tiny_batch):
        """feed_forward returns inputs plus every node activation."""
        acts = combined_graph.feed_forward(tiny_batch)
        assert set(acts) == {"noise", "label", "G-Input", "pic", "D-Input", "D-L1", "output"}
        assert acts["pic"].shape == (8, 4)
        assert acts["output"].shape == (8, 1)

    def test_inference_builds_no_graph(self, combined_graph, tiny_batch):
        out = combined_graph.feed_forward(tiny_batch, training=False)["output"]
        assert not out.requires_grad

    def test_restores_mode(self, combined_graph, tiny_batch):
        combined_graph.train()
        combined_graph.feed_forward(tiny_batch, training=False)
        assert combined_graph.training

    def test_missing_input(self, combined_graph, tiny_batch):
        with pytest.raises(MissingInput):
            combined_graph.feed_forward({"noise": tiny_batch["noise"]})

    def test_get_output_missing(self):
        with pytest.raises(MissingOutput, match="No layer named nope"):
            TrainableGraph.get_output({}, "nope")


class TestFit:

    def test_fit_updates_trainable_layers(self, combined_graph, tiny_batch):
        """Fit changes the generator layer of the combined graph."""
        before = combined_graph.get_parameters("pic")
        combined_graph.fit(tiny_batch, {"output": torch.ones(8, 1)})
        after = combined_graph.get_parameters("pic")
        assert not torch.equal(before["0.weight"], after["0.weight"])

    def test_frozen_layers_unchanged(self, combined_graph, tiny_batch):
        """Frozen discriminator layers keep their values through fit."""
        before = {n: combined_graph.get_parameters(n) for n in ("D-L1", "output")}
        for _ in range(3):
            combined_graph.fit(tiny_batch, {"output": torch.ones(8, 1)})
        for name, params in before.items():
            for key, value in params.items():
                assert torch.equal(value, combined_graph.get_parameters(name)[key])

    def test_frozen_layers_excluded_from_optimizer(self, combined_graph):
        optimized = {id(p) for group in combined_graph.optimizer.param_groups for p in group["params"]}
        frozen = {id(p) for p in combined_graph.nodes["D-L1"].parameters()}
        assert optimized.isdisjoint(frozen)
        assert isinstance(combined_graph.nodes["D-L1"], FrozenNode)

    def test_frozen_node_stays_in_eval(self, combined_graph):
        """Dropout inside a frozen layer is never active."""
        combined_graph.train()
        assert not combined_graph.nodes["D-L1"].module.training

    def test_fit_returns_loss(self, discriminator_graph):
        inputs = {"pic": torch.rand(4, 4), "label": torch.zeros(4, 2)}
        loss = discriminator_graph.fit(inputs, {"output": torch.ones(4, 1)})
        assert isinstance(loss, float)
        assert loss > 0

    def test_fit_missing_target(self, discriminator_graph):
        inputs = {"pic": torch.rand(4, 4), "label": torch.zeros(4, 2)}
        with pytest.raises(MissingOutput):
            discriminator_graph.fit(inputs, {"wrong": torch.ones(4, 1)})

    def test_grad_clip(self, tiny_batch):
        builder = make_tiny_builder()
        graph = TrainableGraph(
            builder.generator_specs + builder.discriminator_specs, GENERATOR_INPUTS, "output",
            frozen=["D-L1", "output"], grad_clip=1e-6,
        )
        graph.fit(tiny_batch, {"output": torch.ones(8, 1)})
        norm = torch.norm(torch.stack([p.grad.norm() for p in graph.trainable_parameters()]))
        assert norm.item() <= 1e-5


class TestParameters:

    def test_get_parameters_is_a_copy(self, discriminator_graph):
        params = discriminator_graph.get_parameters("D-L1")
        params["0.weight"].zero_()
        assert not torch.equal(params["0.weight"], discriminator_graph.get_parameters("D-L1")["0.weight"])

    def test_set_parameters(self, discriminator_graph):
        values = {k: torch.full_like(v, 0.25) for k, v in discriminator_graph.get_parameters("output").items()}
        discriminator_graph.set_parameters("output", values)
        assert torch.all(discriminator_graph.get_parameters("output")["0.weight"] == 0.25)

    def test_frozen_node_uses_plain_keys(self, combined_graph, discriminator_graph):
        """Parameters of a frozen node use the same keys as the unwrapped layer."""
        assert combined_graph.get_parameters("D-L1").keys() == discriminator_graph.get_parameters("D-L1").keys()

    def test_unknown_node(self, discriminator_graph):
        with pytest.raises(KeyError):
            discriminator_graph.get_parameters("D-Nope")

    def test_initialize_is_seeded(self):
        """Two graphs with the same seed initialize identically."""
        a = TrainableGraph(make_tiny_builder().discriminator_specs, DISCRIMINATOR_INPUTS, "output", seed=11)
        b = TrainableGraph(make_tiny_builder().discriminator_specs, DISCRIMINATOR_INPUTS, "output", seed=11)
        a.initialize()
        b.initialize()
        for name in a.layer_names:
            for key, value in a.get_parameters(name).items():
                assert torch.equal(value, b.get_parameters(name)[key])

    def test_layers_not_aliased(self):
        """Graphs built from the same specs own separate parameters."""
        builder = make_tiny_builder()
        a = TrainableGraph(builder.discriminator_specs, DISCRIMINATOR_INPUTS, "output")
        b = TrainableGraph(builder.discriminator_specs, DISCRIMINATOR_INPUTS, "output")
        assert a.node("D-L1") is not b.node("D-L1")
        assert a.node("D-L1") is not builder.discriminator_specs[1].definition

    def test_weights_init(self):
        layer = nn.Linear(3, 3)
        nn.init.constant_(layer.bias, 1.0)
        weights_init(layer)
        assert torch.all(layer.bias == 0)

    def test_weights_init_skips_other_modules(self):
        """Modules other than Linear/Conv keep their own initialization."""
        norm = nn.LayerNorm(3)
        nn.init.constant_(norm.weight, 0.5)
        nn.init.constant_(norm.bias, 0.25)
        weights_init(norm)
        assert torch.all(norm.weight == 0.5)
        assert torch.all(norm.bias == 0.25)


class TestMergeVertex:

    def test_concatenates_features(self):
        """(B, a) and (B, b) merge into (B, a + b), inputs in declared order."""
        merged = MergeVertex()(torch.zeros(4, 3), torch.ones(4, 2))
        assert merged.shape == (4, 5)
        assert torch.all(merged[:, :3] == 0)
        assert torch.all(merged[:, 3:] == 1)

    def test_holds_no_parameters(self):
        assert list(MergeVertex().parameters()) == []


class TestConstruction:

    def test_unknown_output(self):
        with pytest.raises(InvalidTopology):
            TrainableGraph(make_tiny_builder().discriminator_specs, DISCRIMINATOR_INPUTS, "nope")

    def test_unknown_frozen(self):
        with pytest.raises(InvalidTopology, match="Cannot freeze"):
            TrainableGraph(make_tiny_builder().discriminator_specs, DISCRIMINATOR_INPUTS, "output", frozen=["D-X"])


class TestPersistence:

    def test_save_and_load(self, tmp_path, discriminator_graph):
        inputs = {"pic": torch.rand(4, 4), "label": torch.zeros(4, 2)}
        discriminator_graph.fit(inputs, {"output": torch.ones(4, 1)})
        path = str(tmp_path / "d.pt")
        discriminator_graph.save(path, include_optimizer_state=True)

        restored = TrainableGraph(make_tiny_builder().discriminator_specs, DISCRIMINATOR_INPUTS, "output", seed=99)
        restored.initialize()
        restored.load_state(path)
        for name in discriminator_graph.layer_names:
            for key, value in discriminator_graph.get_parameters(name).items():
                assert torch.equal(value, restored.get_parameters(name)[key])
        assert restored.optimizer.state_dict()["state"]

    def test_save_without_optimizer(self, tmp_path, discriminator_graph):
        path = str(tmp_path / "d.pt")
        discriminator_graph.save(path, include_optimizer_state=False)
        assert "optimizer" not in torch.load(path)
