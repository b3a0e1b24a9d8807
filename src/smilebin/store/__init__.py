"""Annotation store backends."""

from .base import AnnotationStore
from .graphql_store import GraphQLStore
from .memory_store import MemoryStore

__all__ = ["AnnotationStore", "GraphQLStore", "MemoryStore"]
