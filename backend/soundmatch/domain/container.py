"""Lightweight service container shared by the matching and recommendation modules."""

from __future__ import annotations

from typing import Optional

import asyncpg

from soundmatch.domain.listening.repository import InMemoryListeningRepository, ListeningRepository
from soundmatch.domain.matching.ledger import InMemoryMatchLedger, MatchLedger
from soundmatch.domain.recommendations.sources import InMemorySongRepository, SongRepository
from soundmatch.domain.signals import InMemorySignalStore, SignalStore

_memory_store = InMemorySignalStore()
_signal_store: SignalStore = _memory_store
_match_ledger: MatchLedger = InMemoryMatchLedger()
_song_repository: SongRepository = InMemorySongRepository(_memory_store)
_listening_repository: ListeningRepository = InMemoryListeningRepository(_memory_store)


def configure(
    *,
    signal_store: Optional[SignalStore] = None,
    match_ledger: Optional[MatchLedger] = None,
    song_repository: Optional[SongRepository] = None,
    listening_repository: Optional[ListeningRepository] = None,
) -> None:
    """Override the default repositories (used by tests and bootstrap)."""

    global _signal_store, _match_ledger, _song_repository, _listening_repository
    if signal_store is not None:
        _signal_store = signal_store
    if match_ledger is not None:
        _match_ledger = match_ledger
    if song_repository is not None:
        _song_repository = song_repository
    if listening_repository is not None:
        _listening_repository = listening_repository


def configure_postgres(pool: asyncpg.Pool) -> None:
    from soundmatch.infra.listening_repo import PostgresListeningRepository
    from soundmatch.infra.match_ledger import PostgresMatchLedger
    from soundmatch.infra.signal_store import PostgresSignalStore
    from soundmatch.infra.song_repo import PostgresSongRepository

    configure(
        signal_store=PostgresSignalStore(pool),
        match_ledger=PostgresMatchLedger(pool),
        song_repository=PostgresSongRepository(pool),
        listening_repository=PostgresListeningRepository(pool),
    )


def configure_in_memory(store: Optional[InMemorySignalStore] = None) -> InMemorySignalStore:
    """Wire every repository to one shared in-memory store and return it."""

    store = store or InMemorySignalStore()
    configure(
        signal_store=store,
        match_ledger=InMemoryMatchLedger(),
        song_repository=InMemorySongRepository(store),
        listening_repository=InMemoryListeningRepository(store),
    )
    return store


def get_signal_store() -> SignalStore:
    return _signal_store


def get_match_ledger() -> MatchLedger:
    return _match_ledger


def get_song_repository() -> SongRepository:
    return _song_repository


def get_listening_repository() -> ListeningRepository:
    return _listening_repository


__all__ = [
    "configure",
    "configure_in_memory",
    "configure_postgres",
    "get_listening_repository",
    "get_match_ledger",
    "get_signal_store",
    "get_song_repository",
]
