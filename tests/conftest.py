"""Shared fixtures: in-memory store, engine and an event factory."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from perpdex_indexer.database.store import EntityStore
from perpdex_indexer.engine.engine import AccountingEngine
from perpdex_indexer.utils.config import EngineConfig
from tests.factories import EventFactory


@pytest.fixture
def store() -> Iterator[EntityStore]:
    """Fresh in-memory database."""
    entity_store = EntityStore.open(":memory:")
    yield entity_store
    entity_store.close()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def engine(store: EntityStore, config: EngineConfig) -> AccountingEngine:
    return AccountingEngine(store, config)


@pytest.fixture
def make_event() -> EventFactory:
    return EventFactory()
