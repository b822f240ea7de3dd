"""State storage."""

from .repository import InMemoryRepository, Repository, RepositoryState

__all__ = ["InMemoryRepository", "Repository", "RepositoryState"]
