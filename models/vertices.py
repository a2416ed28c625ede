"""
Parameterless graph vertices.

Vertices combine activations of other nodes. They hold no trainable state,
so they are never synchronized between graphs.
"""

import torch
import torch.nn as nn


class MergeVertex(nn.Module):
    """Concatenate inputs along the feature axis: (B, a) + (B, b) -> (B, a + b)."""

    def forward(self, *inputs: torch.Tensor) -> torch.Tensor:
        return torch.cat(inputs, dim=1)
