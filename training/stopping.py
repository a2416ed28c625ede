"""
Stopping rules for the discriminator and generator phases.

The predicates are pure functions of windowed averages, so the training loop
and the tests share the exact same decision logic.
"""

from dataclasses import dataclass
from typing import Optional


def discriminator_stable(real_avg: float, delta: float, real_confidence: float, epsilon: float) -> bool:
    """D recognizes real samples and its score on fakes stopped moving."""
    return real_avg > real_confidence and delta <= epsilon


def discriminator_separates(real_avg: float, fake_avg: float, real_confidence: float, fake_identity: float) -> bool:
    """D recognizes real samples and scores fakes below the generator's goal."""
    return real_avg > real_confidence and fake_avg < real_confidence - fake_identity


def generator_fools(fake_avg: float, real_confidence: float, fake_identity: float) -> bool:
    """D's average confidence on generated samples reached the generator's goal."""
    return fake_avg >= real_confidence - fake_identity


def fake_delta(fake_avg: float, previous_fake_avg: Optional[float]) -> float:
    """Change of D's fake average between two windows; infinite for the first window."""
    if previous_fake_avg is None:
        return float("inf")
    return abs(fake_avg - previous_fake_avg)


@dataclass
class PhaseResult:
    """Outcome of one discriminator or generator phase."""

    converged: bool
    fit_calls: int
    real_avg: Optional[float] = None
    fake_avg: Optional[float] = None
    loss: Optional[float] = None
