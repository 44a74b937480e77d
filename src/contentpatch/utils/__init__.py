"""Small shared helpers."""

from .batching import run_in_batches
from .slug import slugify

__all__ = ["run_in_batches", "slugify"]
