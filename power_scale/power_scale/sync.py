"""
Persistence synchronizer: keeps the primary and backup stores in step.

Every mutation is written to the primary store first and then, whatever the
primary outcome, to the backup store. On load the primary store is trusted
per (media type, status, rewatch flag) combination; a combination that comes
back empty is refilled from the backup and written back to the primary.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

from .models import Item, RecordKey, Status
from .stores import RecordStore
from .logging import PersistenceError

logger = logging.getLogger(__name__)

# (is_anime, status, is_rewatch)
Combination = Tuple[bool, Status, bool]


def all_combinations() -> List[Combination]:
    return [
        (is_anime, status, is_rewatch)
        for is_anime in (True, False)
        for status in Status
        for is_rewatch in (False, True)
    ]


@dataclass
class SyncResult:
    """Outcome of one write or delete against both stores."""
    primary_ok: bool
    backup_ok: bool

    @property
    def ok(self) -> bool:
        return self.primary_ok and self.backup_ok


@dataclass
class SyncFailure:
    store: str
    operation: str
    key: RecordKey
    error: str


@dataclass
class LoadReport:
    """What load_all found, and what it had to pull from the backup."""
    buckets: Dict[Combination, List[Item]] = field(default_factory=dict)
    recovered: Dict[Combination, int] = field(default_factory=dict)
    skipped_stale: int = 0

    @property
    def total_recovered(self) -> int:
        return sum(self.recovered.values())


@dataclass
class DivergenceReport:
    missing_from_primary: List[RecordKey] = field(default_factory=list)
    missing_from_backup: List[RecordKey] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not (self.missing_from_primary or self.missing_from_backup or self.errors)


class Synchronizer:
    def __init__(self, primary: RecordStore, backup: RecordStore):
        self.primary = primary
        self.backup = backup
        self.failures: List[SyncFailure] = []

    def _attempt(self, store: RecordStore, operation: str, key: RecordKey, action) -> bool:
        try:
            action()
            return True
        except PersistenceError as e:
            logger.error(f"{store.name} store {operation} failed for {key}: {e}")
            self.failures.append(SyncFailure(store.name, operation, key, str(e)))
            return False

    def write(self, item: Item) -> SyncResult:
        """Upserts the item into the primary store, then into the backup store."""
        key = item.record_key
        primary_ok = self._attempt(self.primary, "write", key, lambda: self.primary.upsert(item))
        backup_ok = self._attempt(self.backup, "write", key, lambda: self.backup.upsert(item))
        if not primary_ok and backup_ok:
            logger.warning(f"Record {key} is held by the backup store only until the next load")
        return SyncResult(primary_ok, backup_ok)

    def delete(self, key: RecordKey) -> SyncResult:
        primary_ok = self._attempt(self.primary, "delete", key, lambda: self.primary.delete(key))
        backup_ok = self._attempt(self.backup, "delete", key, lambda: self.backup.delete(key))
        return SyncResult(primary_ok, backup_ok)

    def _query(self, store: RecordStore, combo: Combination) -> List[Item]:
        is_anime, status, is_rewatch = combo
        try:
            return store.query(is_anime, status, is_rewatch)
        except PersistenceError as e:
            logger.error(f"{store.name} store query failed for {combo}: {e}")
            return []

    def load_all(self) -> LoadReport:
        """
        Loads every combination, preferring the primary store.

        A combination the primary store returns empty (or fails to read) is
        taken from the backup instead, and each recovered record is written
        back to the primary store. Populated combinations are never touched
        by recovery from their empty siblings.
        """
        report = LoadReport()
        empty: List[Combination] = []

        for combo in all_combinations():
            items = self._query(self.primary, combo)
            if items:
                report.buckets[combo] = items
            else:
                empty.append(combo)

        # Identities the primary already files somewhere; a stale backup copy must not duplicate them
        primary_identities: Set[Tuple[int, bool]] = {
            item.identity
            for combo, items in report.buckets.items()
            if not combo[2]
            for item in items
        }

        for combo in empty:
            recovered = []
            for item in self._query(self.backup, combo):
                if not item.is_rewatch and item.identity in primary_identities:
                    logger.warning(f"Ignoring stale backup copy of {item.display_name()} in {combo[1].value}")
                    report.skipped_stale += 1
                    continue
                recovered.append(item)

            report.buckets[combo] = recovered
            if not recovered:
                continue

            logger.info(f"Recovering {len(recovered)} record(s) for {combo} from the backup store")
            report.recovered[combo] = len(recovered)
            for item in recovered:
                self._attempt(self.primary, "write-back", item.record_key, lambda i=item: self.primary.upsert(i))

        return report

    def verify_consistency(self) -> DivergenceReport:
        """Compares the record keys held by each store."""
        report = DivergenceReport()
        try:
            primary_keys = set(self.primary.keys())
        except PersistenceError as e:
            report.errors.append(f"{self.primary.name}: {e}")
            return report
        try:
            backup_keys = set(self.backup.keys())
        except PersistenceError as e:
            report.errors.append(f"{self.backup.name}: {e}")
            return report

        report.missing_from_primary = sorted(backup_keys - primary_keys)
        report.missing_from_backup = sorted(primary_keys - backup_keys)
        if not report.consistent:
            logger.warning(
                f"Store divergence: {len(report.missing_from_primary)} missing from primary, "
                f"{len(report.missing_from_backup)} missing from backup"
            )
        return report
