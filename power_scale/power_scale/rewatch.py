"""
Rewatch lifecycle: numbering, starting, completing and repairing repeat
consumption cycles of an already-completed title.

All changes go through the CategoryManager; this module never touches the
buckets directly.
"""

import logging
from datetime import datetime
from typing import Optional

from .models import Item, Status
from .library import CategoryManager
from .logging import RewatchError

logger = logging.getLogger(__name__)


class RewatchManager:
    def __init__(self, library: CategoryManager):
        self.library = library

    def next_rewatch_number(self, media_id: int, is_anime: bool) -> int:
        """
        Smallest positive number not used by any in-progress or completed
        rewatch of the title. Numbers freed by a deletion get reused.
        """
        used = {r.rewatch_count for r in self.library.in_progress_rewatches(media_id, is_anime)}
        used.update(r.rewatch_count for r in self.library.completed_rewatch_records(media_id, is_anime))
        number = 1
        while number in used:
            number += 1
        return number

    def start_rewatch(self, item: Item, started: Optional[datetime] = None) -> Item:
        """Opens a new in-progress rewatch of a completed title and files it."""
        if not self.library.has_completed(item.media_id, item.is_anime):
            raise RewatchError(f"{item.title} has not been completed yet")
        if self.library.current_rewatch(item.media_id, item.is_anime) is not None:
            raise RewatchError(f"{item.title} already has a rewatch in progress")

        number = self.next_rewatch_number(item.media_id, item.is_anime)
        rewatch = Item.start_rewatch_from(item, number, started or datetime.now())
        self.library.add_item(rewatch)
        logger.info(f"Started rewatch #{number} of {item.title}")
        return rewatch

    def complete_rewatch(self, media_id: int, is_anime: bool, end_date: Optional[datetime] = None) -> bool:
        """
        Moves the current in-progress rewatch to the completed rewatches.
        Returns False when no rewatch is in progress.
        """
        current = self.library.current_rewatch(media_id, is_anime)
        if current is None:
            logger.warning(f"No rewatch in progress for {media_id}")
            return False

        completed = Item.completed_rewatch(
            current,
            end_date=end_date or datetime.now(),
            total_units=self.library.total_units_for(media_id, is_anime),
        )

        self.library.remove_item(current)
        for existing in self.library.completed_rewatch_records(media_id, is_anime):
            if existing.rewatch_count == completed.rewatch_count:
                self.library.remove_item(existing)
        self.library.add_item(completed)

        logger.info(f"Completed rewatch #{completed.rewatch_count} of {completed.title}")
        return True

    def record_past_rewatch(
        self, item: Item, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> Item:
        """Files a repeat cycle that already finished as a completed rewatch with the next free number."""
        if not self.library.has_completed(item.media_id, item.is_anime):
            raise RewatchError(f"{item.title} has not been completed yet")

        number = self.next_rewatch_number(item.media_id, item.is_anime)
        started = Item.start_rewatch_from(item, number, start_date or datetime.now())
        completed = Item.completed_rewatch(
            started,
            end_date=end_date or datetime.now(),
            total_units=self.library.total_units_for(item.media_id, item.is_anime),
        )
        self.library.add_item(completed)
        logger.info(f"Recorded past rewatch #{number} of {item.title}")
        return completed

    def cleanup_and_renumber(self, media_id: int, is_anime: bool) -> int:
        """
        Renumbers the completed rewatches of a title to 1..K in their current
        order and sets the in-progress rewatch, if any, to K+1.

        Safe to call at any time; a second call changes nothing. Returns the
        number of records rewritten.
        """
        completed = sorted(
            self.library.completed_rewatch_records(media_id, is_anime),
            key=lambda r: r.rewatch_count,
        )
        plan = [(old, old.with_changes(rewatch_count=index + 1)) for index, old in enumerate(completed)]

        current = self.library.current_rewatch(media_id, is_anime)
        if current is not None:
            plan.append((current, current.with_changes(rewatch_count=len(completed) + 1)))

        changed = [(old, new) for old, new in plan if old.rewatch_count != new.rewatch_count]
        if not changed:
            return 0

        # Unchanged records that share a stored key with a changed record are rewritten as well
        freed_keys = {old.record_key for old, _ in changed}
        affected = [(old, new) for old, new in plan if old.rewatch_count != new.rewatch_count or old.record_key in freed_keys]

        for old, _ in affected:
            self.library.remove_item(old)
        for _, new in affected:
            self.library.add_item(new)

        logger.info(f"Renumbered {len(affected)} rewatch record(s) for {media_id}")
        return len(affected)
