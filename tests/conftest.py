"""Shared fixtures: a tiny linear CGAN on 4-dim synthetic data."""

import pytest
import torch
import torch.nn as nn
import torch.nn.functional as F

from models.mnist import adam, dense
from models.nodes import NodeSpecBuilder
from models.vertices import MergeVertex
from training.config import ExponentialSchedule, HyperParameters, TrainingConfig
from utils.data import tensor_iterator


NOISE_DIM = 3
LABEL_DIM = 2
PIC_SIZE = 2      # 2x2 "images", 4 pixels


def make_tiny_builder(seed: int = 7) -> NodeSpecBuilder:
    """G: (noise ++ label) -> 4 pixels. D: (pixels ++ label) -> 4 -> realness."""
    builder = NodeSpecBuilder(
        generator_optimizer=adam(1e-2, 0.5),
        discriminator_optimizer=adam(1e-2, 0.5),
        seed=seed,
    )
    builder.add_generator_vertex("Input", MergeVertex(), "noise", "label")
    builder.add_generator_layer("pic", dense(NOISE_DIM + LABEL_DIM, PIC_SIZE * PIC_SIZE, nn.Sigmoid()), "Input")
    builder.add_discriminator_vertex("Input", MergeVertex(), "pic", "label")
    builder.add_discriminator_layer("L1", dense(PIC_SIZE * PIC_SIZE + LABEL_DIM, 4, nn.LeakyReLU(0.2), dropout=0.3), "Input")
    builder.add_discriminator_layer("output", dense(4, 1, nn.Sigmoid()), "L1")
    return builder


@pytest.fixture
def tiny_builder():
    return make_tiny_builder()


@pytest.fixture
def tiny_triple(tiny_builder):
    return tiny_builder.build()


@pytest.fixture
def tiny_hp():
    """Permissive hyperparameters: D stops on its second check, G on its first."""
    return HyperParameters(
        label_amplifier=1.0,
        real_confidence=0.01,
        fake_identity_schedule=ExponentialSchedule(0.6, 0.99),
        learning_rate=1e-2,
        adam_beta1=0.5,
        seed=3,
    )


@pytest.fixture
def tiny_config(tmp_path):
    return TrainingConfig(
        noise_dim=NOISE_DIM,
        label_dim=LABEL_DIM,
        pic_height=PIC_SIZE,
        pic_width=PIC_SIZE,
        batch_size=8,
        iterations=2,
        check_interval=5,
        delta_epsilon=1.0,
        max_d_fit_calls=40,
        max_g_fit_calls=40,
        output_dir=str(tmp_path / "run"),
        show_progress=False,
        data_root=None,
    )


@pytest.fixture
def tiny_data():
    """16 samples, batch 8: two batches per pass."""
    torch.manual_seed(42)
    features = torch.rand(16, PIC_SIZE * PIC_SIZE)
    labels = F.one_hot(torch.arange(16) % LABEL_DIM, LABEL_DIM).float()
    return tensor_iterator(features, labels, batch_size=8, seed=0)


@pytest.fixture
def tiny_batch():
    torch.manual_seed(0)
    return {
        "noise": torch.rand(8, NOISE_DIM),
        "label": F.one_hot(torch.arange(8) % LABEL_DIM, LABEL_DIM).float(),
    }
