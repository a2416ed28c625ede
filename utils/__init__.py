"""
Utility modules for data handling and image export.

This package provides:
- Data: Looping batch iterator, MNIST and in-memory tensor sources
- Images: Sample grid PNG export
"""

from .data import (
    LoopingIterator,
    OneHotLabels,
    make_loader,
    mnist_iterator,
    tensor_iterator,
)
from .images import save_sample_grid, to_images

__all__ = [
    "LoopingIterator",
    "OneHotLabels",
    "make_loader",
    "mnist_iterator",
    "tensor_iterator",
    "save_sample_grid",
    "to_images",
]
