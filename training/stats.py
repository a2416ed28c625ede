"""
Per-graph training statistics written as JSON lines.
"""

import json
import os


class StatsLog:
    """
    Append-only JSONL log of one graph's training statistics.

    Args:
        path: Output file; truncated on open
        tag: Scalar prefix for TensorBoard, e.g. "Discriminator"
        writer: Optional TensorBoard SummaryWriter mirroring the scalars
    """

    def __init__(self, path: str, tag: str, writer=None):
        self.path = path
        self.tag = tag
        self.writer = writer
        self._step = 0
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        self._f = open(path, "w")

    def record(self, **values) -> None:
        self._f.write(json.dumps(values) + "\n")
        self._f.flush()
        if self.writer is not None:
            for key, value in values.items():
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    self.writer.add_scalar(f"{self.tag}/{key}", value, self._step)
        self._step += 1

    def close(self) -> None:
        self._f.close()

    @property
    def closed(self) -> bool:
        return self._f.closed

    def __enter__(self) -> "StatsLog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
