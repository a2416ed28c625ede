"""Tests for training/sampling.py: noise and label batches."""

import torch

from training.sampling import class_labels, generate, random_class_labels, sample_noise

# chi-square critical value, 9 degrees of freedom, p = 0.001
CHI2_CRITICAL_DF9 = 27.877


class TestRandomClassLabels:

    def test_one_non_zero_per_row(self):
        labels = random_class_labels(64, 10, amplifier=7.0, rng=torch.Generator().manual_seed(0))
        assert labels.shape == (64, 10)
        assert torch.all((labels != 0).sum(dim=1) == 1)
        assert torch.all(labels.max(dim=1).values == 7.0)

    def test_uniform_over_classes(self):
        """Class counts over many draws pass a chi-square test against uniform."""
        rng = torch.Generator().manual_seed(1234)
        counts = torch.zeros(10)
        for _ in range(100):
            labels = random_class_labels(100, 10, amplifier=1.0, rng=rng)
            counts += labels.sum(dim=0)
        expected = counts.sum() / 10
        chi2 = ((counts - expected) ** 2 / expected).sum().item()
        assert chi2 < CHI2_CRITICAL_DF9

    def test_seeded_rng_is_reproducible(self):
        a = random_class_labels(32, 10, 1.0, rng=torch.Generator().manual_seed(5))
        b = random_class_labels(32, 10, 1.0, rng=torch.Generator().manual_seed(5))
        assert torch.equal(a, b)


class TestNoiseAndClassLabels:

    def test_noise_range(self):
        noise = sample_noise(16, 3, rng=torch.Generator().manual_seed(0))
        assert noise.shape == (16, 3)
        assert torch.all((noise >= 0) & (noise < 1))

    def test_class_labels(self):
        labels = class_labels(10, 7.0)
        assert torch.equal(labels, torch.eye(10) * 7.0)

    def test_generate_is_inference_only(self, tiny_triple, tiny_batch):
        out = generate(tiny_triple.generator, tiny_batch["noise"], tiny_batch["label"])
        assert out.shape == (8, 4)
        assert not out.requires_grad
