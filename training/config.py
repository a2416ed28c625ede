"""
Hyperparameters and run configuration for adaptive CGAN training.

``HyperParameters`` is created once per run and never mutated.
``TrainingConfig`` holds the fixed run constants (dimensions, loop limits,
output locations).
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Literal, Optional


@dataclass(frozen=True)
class ExponentialSchedule:
    """
    Value decaying by ``gamma`` per iteration: ``initial_value * gamma ** i``.

    Args:
        initial_value: Value at iteration 0
        gamma: Per-iteration multiplier in (0, 1]
    """

    initial_value: float
    gamma: float

    def __post_init__(self):
        if not 0.0 < self.gamma <= 1.0:
            raise ValueError(f"gamma must be in (0, 1], got {self.gamma}")

    def value_at(self, iteration: int) -> float:
        return self.initial_value * self.gamma ** iteration

    __call__ = value_at

    @classmethod
    def from_half_life(cls, initial_value: float, half_life: int) -> "ExponentialSchedule":
        """Schedule whose value halves every ``half_life`` iterations."""
        if half_life <= 0:
            raise ValueError(f"half_life must be > 0, got {half_life}")
        return cls(initial_value, math.pow(0.5, 1.0 / half_life))


@dataclass(frozen=True)
class HyperParameters:
    """
    Tuning knobs of one training run.

    Args:
        label_amplifier: Scale applied to one-hot labels (maps [0, 1] to [0, label_amplifier])
        real_confidence: Minimum average confidence D must give real samples
        fake_identity_schedule: Slack allowed between real_confidence and G's
            target confidence, per outer iteration
        learning_rate: Adam learning rate
        adam_beta1: Adam beta1 (momentum term)
        seed: Seed for weight initialization and the run's RNG stream
    """

    label_amplifier: float = 7.0
    real_confidence: float = 0.9
    fake_identity_schedule: ExponentialSchedule = field(
        default_factory=lambda: ExponentialSchedule(0.6, 0.9965400695800781)
    )
    learning_rate: float = 2e-4
    adam_beta1: float = 0.5
    seed: int = 1189998819991197253

    def __post_init__(self):
        if not 0.0 < self.real_confidence <= 1.0:
            raise ValueError(f"real_confidence must be in (0, 1], got {self.real_confidence}")
        if self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be > 0, got {self.learning_rate}")

    def fake_identity(self, iteration: int) -> float:
        return self.fake_identity_schedule.value_at(iteration)

    def generator_goal(self, iteration: int) -> float:
        """Average D confidence on generated samples that ends Phase G."""
        return self.real_confidence - self.fake_identity(iteration)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TrainingConfig:
    """Fixed constants of a training run."""

    # Dimensions
    noise_dim: int = 100
    label_dim: int = 10
    pic_height: int = 28
    pic_width: int = 28
    batch_size: int = 32

    # Outer loop
    iterations: int = 5000

    # Phase control
    check_interval: int = 500          # fit calls between stopping checks (K)
    delta_epsilon: float = 5e-4        # max change of D's fake average to count as stable
    d_stop_rule: Literal["delta", "threshold"] = "delta"
    max_d_fit_calls: int = 200_000     # Phase D cap per outer iteration
    max_g_fit_calls: int = 200_000     # Phase G cap per outer iteration

    # Outputs
    output_dir: str = "trainingProcess"
    sample_interval: int = 1           # outer iterations between sample grids, 0 disables
    checkpoint_interval: int = 0       # outer iterations between checkpoints, 0 disables
    grid_columns: int = 5

    device: str = "cpu"
    show_progress: bool = True
    data_root: Optional[str] = "./data"
    binarize: bool = True              # threshold MNIST pixels to {0, 1}

    def __post_init__(self):
        for name in ("noise_dim", "label_dim", "pic_height", "pic_width", "batch_size",
                     "check_interval", "max_d_fit_calls", "max_g_fit_calls", "grid_columns"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")
        if self.iterations < 0:
            raise ValueError(f"iterations must be >= 0, got {self.iterations}")
        if self.delta_epsilon < 0:
            raise ValueError(f"delta_epsilon must be >= 0, got {self.delta_epsilon}")
        if self.d_stop_rule not in ("delta", "threshold"):
            raise ValueError(f"d_stop_rule must be 'delta' or 'threshold', got {self.d_stop_rule!r}")
        if self.sample_interval < 0 or self.checkpoint_interval < 0:
            raise ValueError("sample_interval and checkpoint_interval must be >= 0")

    @property
    def pixels(self) -> int:
        return self.pic_height * self.pic_width

    def to_dict(self) -> dict:
        return asdict(self)
