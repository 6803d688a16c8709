"""
Application context: the one object that wires the stores, managers and
ranking engine together. It is built once at startup and handed to
whatever drives the library (the CLI, tests).
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .models import Item, RankingCategory, Status
from .stores import JsonRecordStore, SqlRecordStore
from .sync import DivergenceReport, Synchronizer
from .library import CategoryManager
from .rewatch import RewatchManager
from .session import MemorySessionStore, SessionStore
from .tournament import TournamentEngine, TournamentRun
from .metadata import MetadataClient
from .constants import UNKNOWN_TITLE
from .logging import InvalidStatusError, RewatchError

logger = logging.getLogger(__name__)


@dataclass
class ItemDetail:
    """What a detail view shows for one title."""
    item: Item
    current_rewatch: Optional[Item] = None
    completed_rewatches: List[Item] = field(default_factory=list)
    renumbered: int = 0


class LibraryContext:
    def __init__(
        self,
        sync: Synchronizer,
        session_store: Optional[SessionStore] = None,
        metadata: Optional[MetadataClient] = None,
        rng: Optional[random.Random] = None,
        autosave: bool = True,
        strict: bool = False,
    ):
        self.sync = sync
        self.library = CategoryManager(sync, strict=strict)
        self.rewatches = RewatchManager(self.library)
        self.tournament = TournamentEngine(
            self.library,
            session_store if session_store is not None else MemorySessionStore(),
            rng=rng,
            autosave=autosave,
        )
        self.metadata = metadata

    def load(self):
        return self.library.load()

    # ------------------------------------------------------------------
    # Filing
    # ------------------------------------------------------------------

    def _new_item(self, media_id: int, is_anime: bool, status: Status) -> Item:
        meta = self.metadata.fetch_title_metadata(media_id, is_anime) if self.metadata else None
        if meta is None:
            logger.warning(f"No metadata for {media_id}, filing it as '{UNKNOWN_TITLE}'")
            return Item(media_id=media_id, is_anime=is_anime, title=UNKNOWN_TITLE, status=status)
        return Item(
            media_id=media_id,
            is_anime=is_anime,
            title=meta.title,
            status=status,
            cover_image=meta.cover_image,
            summary=meta.summary,
            genres=list(meta.genres),
            total_units=meta.total_units,
        )

    def add_item(
        self,
        media_id: int,
        is_anime: bool,
        status,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        is_rewatch: bool = False,
        rewatch_count: Optional[int] = None,
    ) -> Item:
        """
        Files a title under a status, or records a rewatch of it.

        Metadata is fetched only the first time a title is filed. Moving a
        title to another status clears its rank in the bucket it leaves.
        """
        status = Status.parse(status)
        if is_rewatch:
            return self._add_rewatch(media_id, is_anime, status, start_date, end_date, rewatch_count)

        existing = self.library.find_item(media_id, is_anime)
        now = datetime.now()
        if existing is None:
            item = self._new_item(media_id, is_anime, status)
        elif existing.status != status:
            item = existing.with_changes(status=status, rank=0)
        else:
            item = existing

        changes = {}
        if start_date or (item.start_date is None and status in (Status.IN_PROGRESS, Status.COMPLETED)):
            changes["start_date"] = start_date or now
        if status == Status.COMPLETED:
            changes["end_date"] = end_date or item.end_date or now
            units = item.total_units or self.library.total_units_for(media_id, is_anime)
            if units:
                changes["progress"] = units
        elif end_date:
            changes["end_date"] = end_date
        if changes:
            item = item.with_changes(**changes)

        self.library.add_item(item)
        if existing is not None and existing.status != status:
            self.library.validate_rank_consistency(is_anime, existing.status)
        return item

    def _add_rewatch(
        self,
        media_id: int,
        is_anime: bool,
        status: Status,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        rewatch_count: Optional[int],
    ) -> Item:
        primary = self.library.find_item(media_id, is_anime)
        if primary is None:
            raise RewatchError(f"{media_id} is not in the library")

        if status == Status.IN_PROGRESS:
            return self.rewatches.start_rewatch(primary, started=start_date)

        if status != Status.COMPLETED:
            raise InvalidStatusError(f"A rewatch can only be in progress or completed, not {status.value}")

        # Re-dating an existing completed rewatch
        if rewatch_count:
            existing = self.library.find_record(media_id, is_anime, True, rewatch_count)
            if existing is not None and existing.status == Status.COMPLETED:
                updated = existing.with_changes(
                    start_date=start_date or existing.start_date,
                    end_date=end_date or existing.end_date,
                )
                self.library.add_item(updated)
                return updated

        current = self.library.current_rewatch(media_id, is_anime)
        if current is not None:
            self.rewatches.complete_rewatch(media_id, is_anime, end_date)
            return self.library.find_record(media_id, is_anime, True, current.rewatch_count)
        return self.rewatches.record_past_rewatch(primary, start_date, end_date)

    def update_progress(self, media_id: int, is_anime: bool, progress: int,
                        is_rewatch: bool = False, rewatch_count: int = 0) -> Optional[Item]:
        return self.library.update_progress(media_id, is_anime, is_rewatch, rewatch_count, progress)

    def update_rating(self, media_id: int, is_anime: bool, rating: float,
                      is_rewatch: bool = False, rewatch_count: int = 0) -> Optional[Item]:
        return self.library.update_rating(media_id, is_anime, is_rewatch, rewatch_count, rating)

    def remove_item(self, media_id: int, is_anime: bool, is_rewatch: bool = False, rewatch_count: int = 0) -> bool:
        item = self.library.find_record(media_id, is_anime, is_rewatch, rewatch_count)
        if item is None:
            return False
        removed = self.library.remove_item(item)
        if removed and not is_rewatch:
            self.library.validate_rank_consistency(is_anime, item.status)
        return removed

    def open_item_detail(self, media_id: int, is_anime: bool) -> Optional[ItemDetail]:
        """Repairs the title's rewatch numbering, then returns it with its rewatches."""
        item = self.library.find_item(media_id, is_anime)
        if item is None:
            return None
        renumbered = self.rewatches.cleanup_and_renumber(media_id, is_anime)
        return ItemDetail(
            item=item,
            current_rewatch=self.library.current_rewatch(media_id, is_anime),
            completed_rewatches=self.library.completed_rewatches(media_id, is_anime),
            renumbered=renumbered,
        )

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    def start_tournament(self, category: RankingCategory) -> TournamentRun:
        return self.tournament.start(category)

    def record_choice(self, winner_id: int) -> Optional[List[Item]]:
        return self.tournament.record_win(winner_id)

    def skip_current_pair(self) -> Optional[List[Item]]:
        return self.tournament.skip_current_pair()

    def save_for_later(self) -> bool:
        return self.tournament.save_for_later()

    def resume(self) -> Optional[TournamentRun]:
        return self.tournament.resume()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def bucket(self, is_anime: bool, status) -> List[Item]:
        return self.library.bucket(is_anime, Status.parse(status))

    def has_rewatches(self, media_id: int, is_anime: bool) -> bool:
        return self.library.has_rewatches(media_id, is_anime)

    def completed_rewatches(self, media_id: int, is_anime: bool) -> List[Item]:
        return self.library.completed_rewatches(media_id, is_anime)

    def verify_storage(self) -> DivergenceReport:
        return self.sync.verify_consistency()


def build_context(config) -> LibraryContext:
    """Opens the configured stores and loads the library from them."""
    storage = config.storage
    primary = SqlRecordStore.for_path(storage.primary_path)
    backup = JsonRecordStore(storage.backup_path)
    jikan = config.jikan

    context = LibraryContext(
        Synchronizer(primary, backup),
        session_store=SessionStore(storage.session_path),
        metadata=MetadataClient(jikan.base_url, jikan.rate_limit_delay, jikan.timeout),
        rng=random.Random(config.ranking.seed),
        autosave=config.ranking.autosave,
        strict=config.library.strict_status,
    )
    context.load()
    return context
