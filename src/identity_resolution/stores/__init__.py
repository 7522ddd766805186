from identity_resolution.stores.memory import InMemoryStore
from identity_resolution.stores.sqlite import SqliteStore

__all__ = ["InMemoryStore", "SqliteStore"]
