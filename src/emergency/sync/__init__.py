"""Replication layer: document store, snapshot reconciler, player client."""

from emergency.sync.store import InMemoryStore, ReplicatedStore, StoreError
from emergency.sync.reconciler import Reconciler
from emergency.sync.client import PlayerClient

__all__ = [
    "InMemoryStore",
    "ReplicatedStore",
    "StoreError",
    "Reconciler",
    "PlayerClient",
]
