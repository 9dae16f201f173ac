"""Persistence: results and strategy sources."""

from quantflow.persistence.store import PersistencePort, FileResultStore

__all__ = ["PersistencePort", "FileResultStore"]
