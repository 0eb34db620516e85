"""Persistence: the repository contract plus in-memory and Neo4j implementations."""

from .repository import ImpactRepository
from .memory_store import InMemoryRepository
from .neo4j_store import Neo4jStore, neo4j_store

__all__ = ["ImpactRepository", "InMemoryRepository", "Neo4jStore", "neo4j_store"]
