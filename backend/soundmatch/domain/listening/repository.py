"""Write-side storage for listening history and music preference weights."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from soundmatch.domain.signals import InMemorySignalStore

DIMENSIONS = ("genre", "artist", "language")


class ListeningRepository(Protocol):
    async def record_play(self, user_id: str, song_id: str, played_at: datetime) -> None:
        """Insert a history row or bump its play count and last-played time."""
        ...

    async def add_weight(self, user_id: str, dimension: str, name: str, delta: float) -> None:
        ...

    async def raise_weight_floor(self, user_id: str, dimension: str, name: str, floor: float) -> None:
        """Set the weight to max(current, floor), creating the row if needed."""
        ...

    async def delete_preferences(self, user_id: str) -> int:
        ...


class InMemoryListeningRepository(ListeningRepository):
    def __init__(self, store: InMemorySignalStore) -> None:
        self.store = store

    async def record_play(self, user_id: str, song_id: str, played_at: datetime) -> None:
        self.store.add_play(user_id, song_id, play_count=1, last_played=played_at)

    async def add_weight(self, user_id: str, dimension: str, name: str, delta: float) -> None:
        current = self.store.weights[user_id][dimension].get(name, 0.0)
        self.store.set_weight(user_id, dimension, name, current + max(0.0, delta))

    async def raise_weight_floor(self, user_id: str, dimension: str, name: str, floor: float) -> None:
        current = self.store.weights[user_id][dimension].get(name, 0.0)
        self.store.set_weight(user_id, dimension, name, max(current, floor))

    async def delete_preferences(self, user_id: str) -> int:
        dims = self.store.weights.pop(user_id, None)
        if not dims:
            return 0
        return sum(len(values) for values in dims.values())


__all__ = ["DIMENSIONS", "InMemoryListeningRepository", "ListeningRepository"]
