"""
Category/list management for the library.

The CategoryManager owns the in-memory buckets, one per (media type, status),
plus a separate collection of completed rewatches per media type. Other
components change the library only through its add/remove/update methods,
and every change is written through the Synchronizer.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Tuple

from .models import Item, Status, media_label
from .sync import Synchronizer, LoadReport
from .logging import InvalidStatusError

logger = logging.getLogger(__name__)

BucketKey = Tuple[bool, Status]


def _rank_order(items: List[Item]) -> List[Item]:
    # Ranked items first by rank; unranked keep their insertion order at the end
    return sorted(items, key=lambda i: (i.rank == 0, i.rank))


class CategoryManager:
    def __init__(self, sync: Synchronizer, strict: bool = False):
        self.sync = sync
        self.strict = strict
        self._buckets: Dict[BucketKey, List[Item]] = {
            (is_anime, status): []
            for is_anime in (True, False)
            for status in Status
        }
        self._completed_rewatches: Dict[bool, List[Item]] = {True: [], False: []}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> LoadReport:
        """Replaces the in-memory lists with what the stores hold."""
        for items in self._buckets.values():
            items.clear()
        for items in self._completed_rewatches.values():
            items.clear()

        report = self.sync.load_all()
        for (is_anime, status, is_rewatch), items in report.buckets.items():
            for item in items:
                target = self._collection_for(item)
                if target is None:
                    logger.warning(f"Dropping unplaceable record from storage: {item.record_key} ({status.value})")
                    continue
                target.append(item)

        for is_anime in (True, False):
            for status in Status:
                self.validate_rank_consistency(is_anime, status)

        counts = self.counts()
        logger.info(f"Library loaded: {sum(counts.values())} records ({report.total_recovered} recovered from backup)")
        return report

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def _collection_for(self, item: Item) -> Optional[List[Item]]:
        """The list an item belongs in, or None if it cannot be filed."""
        if not isinstance(item.status, Status):
            return None
        if not item.is_rewatch:
            return self._buckets[(item.is_anime, item.status)]
        if item.status == Status.IN_PROGRESS:
            return self._buckets[(item.is_anime, Status.IN_PROGRESS)]
        if item.status == Status.COMPLETED:
            return self._completed_rewatches[item.is_anime]
        # Rewatches only ever run or finish; they are never planned, paused or dropped
        return None

    def _reject(self, item: Item) -> None:
        message = f"Cannot file {item.record_key} under status {item.status!r}"
        if self.strict:
            raise InvalidStatusError(message)
        logger.error(message)

    @staticmethod
    def _index_of(collection: List[Item], item: Item) -> Optional[int]:
        for index, existing in enumerate(collection):
            if existing is item:
                return index
        for index, existing in enumerate(collection):
            if existing == item:
                return index
        return None

    def _remove_primary(self, media_id: int, is_anime: bool) -> None:
        for (bucket_anime, _), items in self._buckets.items():
            if bucket_anime != is_anime:
                continue
            items[:] = [i for i in items if i.is_rewatch or i.media_id != media_id]

    def add_item(self, item: Item) -> bool:
        """
        Files an item under its status and persists it.

        A primary item replaces any primary copy of the same title in every
        bucket. An in-progress rewatch joins the in-progress bucket next to
        the title's primary record; a completed rewatch goes to the completed
        rewatch collection. A rewatch with the same record key is replaced.
        Returns False when the item cannot be filed.
        """
        target = self._collection_for(item)
        if target is None:
            self._reject(item)
            return False

        if not item.is_rewatch:
            self._remove_primary(item.media_id, item.is_anime)
            target.append(item)
        else:
            for index, existing in enumerate(target):
                if existing.is_rewatch and existing.record_key == item.record_key:
                    target[index] = item
                    break
            else:
                target.append(item)

        logger.info(f"Filed {item.display_name()} under {item.status.label(item.is_anime)}")
        self.sync.write(item)
        return True

    def remove_item(self, item: Item) -> bool:
        """
        Removes one record from memory and from both stores. A primary record
        is kept while completed rewatches of the title exist.
        """
        if not item.is_rewatch and self._completed_for(item.media_id, item.is_anime):
            logger.warning(f"Refusing to remove {item.title}: completed rewatches still reference it")
            return False

        target = self._collection_for(item)
        index = self._index_of(target, item) if target is not None else None
        if index is None:
            logger.warning(f"Cannot remove {item.record_key}: not in the library")
            return False

        target.pop(index)
        logger.info(f"Removed {item.display_name()} from {item.status.label(item.is_anime)}")
        self.sync.delete(item.record_key)
        return True

    def _replace(self, old: Item, new: Item) -> Item:
        """Swaps a record for its updated value in place and persists it."""
        target = self._collection_for(old)
        index = self._index_of(target, old) if target is not None else None
        if index is None:
            raise ValueError(f"{old.record_key} is not in the library")
        target[index] = new
        self.sync.write(new)
        return new

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def bucket(self, is_anime: bool, status: Status) -> List[Item]:
        """The items filed under one status, in rank order."""
        return _rank_order(self._buckets[(is_anime, status)])

    def all_items(self, is_anime: bool) -> List[Item]:
        items = []
        for status in Status:
            items.extend(self._buckets[(is_anime, status)])
        items.extend(self._completed_rewatches[is_anime])
        return items

    def find_item(self, media_id: int, is_anime: bool) -> Optional[Item]:
        """The primary (non-rewatch) record of a title, wherever it is filed."""
        for status in Status:
            for item in self._buckets[(is_anime, status)]:
                if item.media_id == media_id and not item.is_rewatch:
                    return item
        return None

    def find_current_status(self, media_id: int, is_anime: bool) -> Optional[Status]:
        item = self.find_item(media_id, is_anime)
        return item.status if item else None

    def find_record(self, media_id: int, is_anime: bool, is_rewatch: bool, rewatch_count: int) -> Optional[Item]:
        if not is_rewatch:
            return self.find_item(media_id, is_anime)
        for item in self._buckets[(is_anime, Status.IN_PROGRESS)]:
            if item.media_id == media_id and item.is_rewatch and item.rewatch_count == rewatch_count:
                return item
        for item in self._completed_rewatches[is_anime]:
            if item.media_id == media_id and item.rewatch_count == rewatch_count:
                return item
        return None

    def in_progress_rewatches(self, media_id: int, is_anime: bool) -> List[Item]:
        return [
            i for i in self._buckets[(is_anime, Status.IN_PROGRESS)]
            if i.media_id == media_id and i.is_rewatch
        ]

    def current_rewatch(self, media_id: int, is_anime: bool) -> Optional[Item]:
        running = self.in_progress_rewatches(media_id, is_anime)
        return running[0] if running else None

    def _completed_for(self, media_id: int, is_anime: bool) -> List[Item]:
        return [i for i in self._completed_rewatches[is_anime] if i.media_id == media_id]

    def completed_rewatch_records(self, media_id: int, is_anime: bool) -> List[Item]:
        """Every completed rewatch record of a title, duplicates included, in storage order."""
        return self._completed_for(media_id, is_anime)

    def completed_rewatches(self, media_id: int, is_anime: bool) -> List[Item]:
        """Completed rewatches by ascending number, one per number."""
        result = []
        seen = set()
        for rewatch in sorted(self._completed_for(media_id, is_anime), key=lambda i: i.rewatch_count):
            if rewatch.rewatch_count not in seen:
                seen.add(rewatch.rewatch_count)
                result.append(rewatch)
        return result

    def has_rewatches(self, media_id: int, is_anime: bool) -> bool:
        return bool(self.in_progress_rewatches(media_id, is_anime) or self._completed_for(media_id, is_anime))

    def has_completed(self, media_id: int, is_anime: bool) -> bool:
        """True once the title has a primary Completed record or any completed rewatch."""
        primary = self.find_item(media_id, is_anime)
        if primary and primary.status == Status.COMPLETED:
            return True
        return bool(self._completed_for(media_id, is_anime))

    def total_units_for(self, media_id: int, is_anime: bool) -> int:
        """
        Episode/chapter count of a title. Uses the metadata count stored on
        any record, falling back to the furthest progress any record reached.
        """
        records = [i for i in self.all_items(is_anime) if i.media_id == media_id]
        for record in records:
            if record.total_units:
                return record.total_units
        return max((r.progress for r in records), default=0)

    def counts(self) -> Dict[str, int]:
        counts: Counter = Counter()
        for (is_anime, status), items in self._buckets.items():
            counts[f"{media_label(is_anime)}/{status.label(is_anime)}"] = len(items)
        for is_anime, items in self._completed_rewatches.items():
            counts[f"{media_label(is_anime)}/Completed Rewatches"] = len(items)
        return dict(counts)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_progress(
        self, media_id: int, is_anime: bool, is_rewatch: bool, rewatch_count: int, progress: int
    ) -> Optional[Item]:
        """Sets the units consumed on an in-progress record. Returns None if there is none."""
        if progress < 0:
            raise ValueError("progress cannot be negative")
        for item in self._buckets[(is_anime, Status.IN_PROGRESS)]:
            if item.media_id != media_id or item.is_rewatch != is_rewatch:
                continue
            if is_rewatch and item.rewatch_count != rewatch_count:
                continue
            return self._replace(item, item.with_changes(progress=progress))
        logger.warning(f"No in-progress record for {media_id} (rewatch={is_rewatch}, #{rewatch_count})")
        return None

    def update_rating(
        self, media_id: int, is_anime: bool, is_rewatch: bool, rewatch_count: int, rating: float
    ) -> Optional[Item]:
        """Sets the user's score on any record of a title. Returns None if the record does not exist."""
        item = self.find_record(media_id, is_anime, is_rewatch and rewatch_count > 0, rewatch_count)
        if item is None:
            logger.warning(f"No record to rate for {media_id} (rewatch={is_rewatch}, #{rewatch_count})")
            return None
        return self._replace(item, item.with_changes(score=rating))

    def apply_rank(self, item: Item, rank: int) -> Item:
        if item.rank == rank:
            return item
        return self._replace(item, item.with_changes(rank=rank))

    def move_item(self, is_anime: bool, status: Status, source: int, destination: int) -> List[Item]:
        """
        Drag-reorder inside one bucket: moves the item at `source` to
        `destination` and renumbers the bucket's primary items 1..N to match.
        Rewatch records stay unranked. Only items whose rank changed are
        rewritten.
        """
        ordered = self.bucket(is_anime, status)
        if not 0 <= source < len(ordered):
            raise IndexError(f"source {source} out of range for {len(ordered)} items")
        destination = max(0, min(destination, len(ordered) - 1))

        moved = ordered.pop(source)
        ordered.insert(destination, moved)

        result = []
        rank = 0
        for item in ordered:
            if item.is_rewatch:
                result.append(self.apply_rank(item, 0))
                continue
            rank += 1
            result.append(self.apply_rank(item, rank))
        return result

    # ------------------------------------------------------------------
    # Rank consistency
    # ------------------------------------------------------------------

    def validate_rank_consistency(self, is_anime: bool, status: Status) -> bool:
        """
        Checks that the ranked primary items of a bucket hold ranks 1..K with
        no gaps or duplicates and that no rewatch record carries a rank,
        reindexing the bucket if not. Returns True if a reindex was needed.
        """
        bucket = self._buckets[(is_anime, status)]
        ranks = sorted(i.rank for i in bucket if i.rank > 0 and not i.is_rewatch)
        ranked_rewatches = any(i.is_rewatch and i.rank != 0 for i in bucket)
        if ranks == list(range(1, len(ranks) + 1)) and not ranked_rewatches:
            return False
        logger.warning(f"Inconsistent ranks in {media_label(is_anime)}/{status.value}: {ranks}")
        self.reindex_ranks(is_anime, status)
        return True

    def reindex_ranks(self, is_anime: bool, status: Status) -> int:
        """
        Renumbers the ranked primary items of a bucket to 1..K in their
        current order and clears any rank held by a rewatch record.
        """
        changed = 0
        for item in self.bucket(is_anime, status):
            if item.is_rewatch and item.rank != 0:
                self.apply_rank(item, 0)
                changed += 1
        ranked = [i for i in self.bucket(is_anime, status) if i.rank > 0 and not i.is_rewatch]
        for index, item in enumerate(ranked):
            if item.rank != index + 1:
                self.apply_rank(item, index + 1)
                changed += 1
        return changed
