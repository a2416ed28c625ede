"""
Image export for generated samples.
"""

import torch
from torchvision import utils as vutils


def to_images(samples: torch.Tensor, pic_height: int, pic_width: int) -> torch.Tensor:
    """(N, H*W) activations in [0, 1] -> (N, 1, H, W) grayscale images."""
    return samples.detach().cpu().reshape(-1, 1, pic_height, pic_width).clamp(0, 1)


def save_sample_grid(samples: torch.Tensor, path: str, pic_height: int, pic_width: int, nrow: int = 5) -> None:
    """
    Save samples as a grid PNG with no padding between tiles.

    With 10 per-class samples and ``nrow=5`` the layout is:
        0 1 2 3 4
        5 6 7 8 9

    Args:
        samples: Flattened samples of shape (N, H*W) in range [0, 1]
        path: Output PNG path
        pic_height: Tile height
        pic_width: Tile width
        nrow: Tiles per row
    """
    grid = vutils.make_grid(to_images(samples, pic_height, pic_width), nrow=nrow, padding=0)
    vutils.save_image(grid, path)
