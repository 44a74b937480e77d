"""Persistence for the editable-element catalog."""

from .schema import EditableElement, ElementGroup, ElementType, Placeholder, RecordModel, utc_now
from .store import CatalogStore

__all__ = [
    "CatalogStore",
    "EditableElement",
    "ElementGroup",
    "ElementType",
    "Placeholder",
    "RecordModel",
    "utc_now",
]
