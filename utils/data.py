"""
Data utilities for CGAN training.

Provides a wrap-around batch iterator plus MNIST and in-memory tensor
sources. Every batch is ``(features, labels)`` with flattened float features
of shape (B, H*W) and one-hot float labels of shape (B, num_classes).
"""

from typing import Iterator, Optional, Tuple

import torch
import torch.nn.functional as F
from torch.utils.data import DataLoader, Dataset, TensorDataset
from torchvision import datasets, transforms


# Pixel intensity above which a binarized MNIST pixel is set to 1
BINARIZE_THRESHOLD = 30.0 / 255.0

Batch = Tuple[torch.Tensor, torch.Tensor]


class LoopingIterator:
    """
    Batch iterator with explicit ``has_next``/``next``/``reset``.

    ``next_batch`` restarts the underlying loader when it is exhausted, so a
    training phase never ends because it ran out of data.

    Args:
        loader: DataLoader yielding (features, labels) batches
    """

    def __init__(self, loader: DataLoader):
        self.loader = loader
        self._it: Optional[Iterator] = None
        self._pending: Optional[Batch] = None
        self.epochs = 0

    def reset(self) -> None:
        self._it = iter(self.loader)
        self._pending = None

    def has_next(self) -> bool:
        if self._it is None:
            self.reset()
        if self._pending is None:
            try:
                self._pending = next(self._it)
            except StopIteration:
                return False
        return True

    def next(self) -> Batch:
        if not self.has_next():
            raise StopIteration
        batch, self._pending = self._pending, None
        return batch

    def next_batch(self) -> Batch:
        """Next batch, silently starting a new pass over the data when exhausted."""
        if not self.has_next():
            self.epochs += 1
            self.reset()
            if not self.has_next():
                raise ValueError("Dataset yields no batches; is it smaller than one batch?")
        return self.next()


class OneHotLabels(Dataset):
    """
    Wrap a (image, class index) dataset to return flattened images and one-hot labels.

    Args:
        ds: Source dataset returning (tensor image, int label)
        num_classes: One-hot width
        binarize: If True, threshold pixels at ``BINARIZE_THRESHOLD``
    """

    def __init__(self, ds: Dataset, num_classes: int = 10, binarize: bool = False):
        self.ds = ds
        self.num_classes = num_classes
        self.binarize = binarize

    def __len__(self) -> int:
        return len(self.ds)

    def __getitem__(self, idx: int) -> Batch:
        x, y = self.ds[idx]
        x = x.reshape(-1)
        if self.binarize:
            x = (x > BINARIZE_THRESHOLD).float()
        label = F.one_hot(torch.tensor(y), self.num_classes).float()
        return x, label


def make_loader(ds: Dataset, batch_size: int, seed: int, shuffle: bool = True, num_workers: int = 0) -> DataLoader:
    g = torch.Generator().manual_seed(seed)
    return DataLoader(
        ds, batch_size=batch_size, shuffle=shuffle,
        num_workers=num_workers, drop_last=True, generator=g
    )


def mnist_iterator(
    train: bool = True,
    batch_size: int = 32,
    seed: int = 1337,
    data_root: str = "./data",
    binarize: bool = True,
    num_workers: int = 0,
) -> LoopingIterator:
    """
    Looping MNIST iterator.

    Args:
        train: If True, use training split; else test split
        batch_size: Samples per batch (incomplete last batch is dropped)
        seed: Shuffle seed
        data_root: Root directory for MNIST data
        binarize: Threshold pixels to {0, 1}
        num_workers: DataLoader workers
    """
    try:
        # Try without downloading (works if data already exists)
        ds = datasets.MNIST(data_root, train=train, download=False, transform=transforms.ToTensor())
    except RuntimeError:
        ds = datasets.MNIST(data_root, train=train, download=True, transform=transforms.ToTensor())
    wrapped = OneHotLabels(ds, num_classes=len(ds.classes), binarize=binarize)
    return LoopingIterator(make_loader(wrapped, batch_size, seed, shuffle=train, num_workers=num_workers))


def tensor_iterator(features: torch.Tensor, labels: torch.Tensor, batch_size: int, seed: int = 1337) -> LoopingIterator:
    """Looping iterator over in-memory features and one-hot labels."""
    return LoopingIterator(make_loader(TensorDataset(features, labels), batch_size, seed))
