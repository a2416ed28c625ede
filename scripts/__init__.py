"""
Evaluation scripts.

This package provides:
- eval: D confidence on real vs. generated samples for a saved run
"""

__all__ = []
