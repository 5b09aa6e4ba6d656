"""
Document store package for the Listings service.

The persistence engine is an external collaborator; this package defines the
narrow contract the finder and writers consume and ships an in-process
implementation for local runs and tests.
"""

from .base import DocumentStore, Predicate, SortSpec
from .memory import MemoryDocumentStore

__all__ = [
    "DocumentStore",
    "Predicate",
    "SortSpec",
    "MemoryDocumentStore",
]
