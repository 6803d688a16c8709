"""
Shared fixtures: in-memory stores, a loaded library and an item factory.
"""

import random
from datetime import datetime

import pytest

from power_scale.power_scale.models import Item, Status
from power_scale.power_scale.stores import MemoryRecordStore
from power_scale.power_scale.sync import Synchronizer
from power_scale.power_scale.library import CategoryManager
from power_scale.power_scale.rewatch import RewatchManager
from power_scale.power_scale.session import MemorySessionStore
from power_scale.power_scale.context import LibraryContext
from power_scale.power_scale.logging import PersistenceError


class FailingStore(MemoryRecordStore):
    """A store whose writes and deletes always fail."""

    def upsert(self, item):
        raise PersistenceError("disk is gone")

    def delete(self, key):
        raise PersistenceError("disk is gone")


class UnreadableStore(MemoryRecordStore):
    """A store whose reads always fail; writes still land in memory."""

    def query(self, is_anime, status, is_rewatch):
        raise PersistenceError("file is not a database")

    def all(self):
        raise PersistenceError("file is not a database")


def make_item(media_id=1, status=Status.COMPLETED, is_anime=True, **fields):
    fields.setdefault("title", f"Title {media_id}")
    return Item(media_id=media_id, is_anime=is_anime, status=status, **fields)


@pytest.fixture
def primary():
    return MemoryRecordStore("primary")


@pytest.fixture
def backup():
    return MemoryRecordStore("backup")


@pytest.fixture
def sync(primary, backup):
    return Synchronizer(primary, backup)


@pytest.fixture
def library(sync):
    return CategoryManager(sync, strict=True)


@pytest.fixture
def rewatches(library):
    return RewatchManager(library)


@pytest.fixture
def context(sync):
    return LibraryContext(sync, session_store=MemorySessionStore(), rng=random.Random(7), strict=True)


@pytest.fixture
def day():
    def _day(n):
        return datetime(2024, 1, n)
    return _day
