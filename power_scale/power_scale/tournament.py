"""
Pairwise tournament ranking.

A run shows the user a fixed schedule of head-to-head pairs, tallies the
winners and, once every pair has been decided, ranks the candidates by
their win counts. The schedule comes from one random shuffle followed by a
merge-sort shaped walk, so it stays near N log N comparisons and can be
saved and resumed as a plain list of id pairs.
"""

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .models import ComparisonPair, Item, RankingCategory
from .library import CategoryManager
from .session import SessionStore, TournamentSnapshot
from .logging import NotEnoughItemsError, PersistenceError

logger = logging.getLogger(__name__)


def generate_pairs(items: Sequence[Item], rng: Optional[random.Random] = None) -> List[ComparisonPair]:
    """
    Builds the comparison schedule for a set of items.

    Each item starts as a run of one. Runs are merged two at a time, round
    after round, until one is left. A merge walks the left run, pairing each
    of its items with the front of the right run and keeping the left item
    as the provisional winner; the remainder of the right run follows. An
    odd run at the end of a round waits for the next round.
    """
    rng = rng or random.Random()
    shuffled = list(items)
    rng.shuffle(shuffled)

    pairs: List[ComparisonPair] = []
    runs = [[item] for item in shuffled]
    while len(runs) > 1:
        next_runs = []
        for k in range(0, len(runs) - 1, 2):
            left, right = runs[k], runs[k + 1]
            merged = []
            i = j = 0
            while i < len(left) and j < len(right):
                pairs.append(ComparisonPair(left[i], right[j]))
                merged.append(left[i])
                i += 1
            merged.extend(left[i:])
            merged.extend(right[j:])
            next_runs.append(merged)
        if len(runs) % 2:
            next_runs.append(runs[-1])
        runs = next_runs
    return pairs


def first_appearance_order(pairs: Sequence[ComparisonPair]) -> List[int]:
    """Media ids in the order they first show up in the schedule."""
    order: List[int] = []
    seen = set()
    for pair in pairs:
        for media_id in pair.ids:
            if media_id not in seen:
                seen.add(media_id)
                order.append(media_id)
    return order


class TournamentState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class TournamentRun:
    """The live state of one tournament."""
    category: RankingCategory
    candidates: List[Item]
    pairs: List[ComparisonPair]
    cursor: int = 0
    win_counts: Dict[int, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.pairs)

    @property
    def finished(self) -> bool:
        return self.cursor >= len(self.pairs)

    def current_pair(self) -> Optional[ComparisonPair]:
        return None if self.finished else self.pairs[self.cursor]

    def snapshot(self) -> TournamentSnapshot:
        return TournamentSnapshot(
            category=self.category,
            pairs=[p.ids for p in self.pairs],
            cursor=self.cursor,
            win_counts=dict(self.win_counts),
            active_ids=[c.media_id for c in self.candidates],
        )


class TournamentEngine:
    """Runs one tournament at a time over a bucket of the library."""

    def __init__(
        self,
        library: CategoryManager,
        session_store: SessionStore,
        rng: Optional[random.Random] = None,
        autosave: bool = True,
    ):
        self.library = library
        self.session_store = session_store
        self.rng = rng or random.Random()
        self.autosave = autosave
        self.state = TournamentState.IDLE
        self.run: Optional[TournamentRun] = None
        self.last_ranking: List[Item] = []

    def _candidates(self, category: RankingCategory) -> List[Item]:
        return [i for i in self.library.bucket(category.is_anime, category.status) if not i.is_rewatch]

    def start(self, category: RankingCategory) -> TournamentRun:
        """
        Begins a new run over the category's items.

        Raises NotEnoughItemsError when there are fewer than two. Any saved
        session is replaced.
        """
        candidates = self._candidates(category)
        if len(candidates) < 2:
            raise NotEnoughItemsError(len(candidates), category.label)

        pairs = generate_pairs(candidates, self.rng)
        self.run = TournamentRun(category=category, candidates=candidates, pairs=pairs)
        self.state = TournamentState.ACTIVE
        logger.info(f"Started ranking of {len(candidates)} {category.label} items over {len(pairs)} pairs")
        self._autosave()
        return self.run

    def current_pair(self) -> Optional[ComparisonPair]:
        if self.state != TournamentState.ACTIVE or self.run is None:
            return None
        return self.run.current_pair()

    @property
    def progress(self) -> Tuple[int, int]:
        """(pairs decided, pairs in the schedule)"""
        if self.run is None:
            return (0, 0)
        return (min(self.run.cursor, self.run.total), self.run.total)

    def record_win(self, winner_id: int) -> Optional[List[Item]]:
        """
        Credits the winner of the current pair and moves on. Returns the
        committed ranking when that was the last pair, otherwise None.
        """
        pair = self.current_pair()
        if pair is None:
            raise ValueError("No tournament is in progress")
        if not pair.contains(winner_id):
            raise ValueError(f"{winner_id} is not part of the current pair {pair.ids}")

        run = self.run
        run.win_counts[winner_id] = run.win_counts.get(winner_id, 0) + 1
        run.cursor += 1

        if run.finished:
            return self._commit()
        self._autosave()
        return None

    def skip_current_pair(self) -> Optional[List[Item]]:
        """Decides the current pair with a coin flip so the run still advances."""
        pair = self.current_pair()
        if pair is None:
            raise ValueError("No tournament is in progress")
        winner = pair.first if self.rng.random() < 0.5 else pair.second
        logger.debug(f"Skipped pair {pair.ids}, coin flip chose {winner.media_id}")
        return self.record_win(winner.media_id)

    def _commit(self) -> List[Item]:
        """
        Writes the final ranks and returns the engine to idle. The finished
        run stays available as `run` until the next start or resume.
        """
        run = self.run
        self.state = TournamentState.COMPLETED
        appearance = {media_id: index for index, media_id in enumerate(first_appearance_order(run.pairs))}
        ordered = sorted(run.candidates, key=lambda c: appearance.get(c.media_id, len(appearance)))
        ordered.sort(key=lambda c: run.win_counts.get(c.media_id, 0), reverse=True)

        ranking = []
        for index, candidate in enumerate(ordered):
            current = self.library.find_item(candidate.media_id, candidate.is_anime)
            if current is None or current.status != run.category.status:
                logger.warning(f"{candidate.title} left {run.category.label} during ranking, not ranked")
                continue
            ranking.append(self.library.apply_rank(current, index + 1))

        self.library.reindex_ranks(run.category.is_anime, run.category.status)
        self._clear_session()
        run.win_counts.clear()
        self.last_ranking = ranking
        self.state = TournamentState.IDLE
        logger.info(f"Ranking of {run.category.label} committed for {len(ranking)} items")
        return ranking

    def reset(self) -> None:
        """Drops the current run and returns the engine to idle."""
        self.run = None
        self.state = TournamentState.IDLE

    # ------------------------------------------------------------------
    # Save / resume
    # ------------------------------------------------------------------

    def _autosave(self) -> None:
        if not self.autosave or self.run is None:
            return
        try:
            self.session_store.save(self.run.snapshot())
        except PersistenceError as e:
            logger.error(f"Autosave of ranking session failed: {e}")

    def _clear_session(self) -> None:
        try:
            self.session_store.clear()
        except PersistenceError as e:
            logger.error(f"Could not clear saved ranking session: {e}")

    def save_for_later(self) -> bool:
        """Stores the run at the current pair and puts the engine back to idle."""
        if self.state != TournamentState.ACTIVE or self.run is None:
            logger.warning("No tournament in progress to save")
            return False
        try:
            self.session_store.save(self.run.snapshot())
        except PersistenceError as e:
            logger.error(f"Could not save ranking session: {e}")
            return False
        done, total = self.progress
        logger.info(f"Ranking of {self.run.category.label} saved at pair {done}/{total}")
        self.reset()
        return True

    def has_saved_session(self) -> bool:
        return self.session_store.exists()

    def discard_saved_session(self) -> bool:
        try:
            return self.session_store.clear()
        except PersistenceError as e:
            logger.error(f"Could not discard ranking session: {e}")
            return False

    def resume(self) -> Optional[TournamentRun]:
        """
        Restores a saved run. Returns None when nothing is saved or nothing
        in the saved run is still in the library.

        Pairs whose items have since left the category are dropped and the
        cursor moves back by the number of dropped pairs it had passed.
        """
        snapshot = self.session_store.load()
        if snapshot is None:
            return None

        category = snapshot.category
        by_id = {c.media_id: c for c in self._candidates(category)}
        saved_ids = snapshot.active_ids or list(by_id)
        candidates = [by_id[i] for i in saved_ids if i in by_id]

        pairs: List[ComparisonPair] = []
        cursor = 0
        dropped = 0
        for index, (first_id, second_id) in enumerate(snapshot.pairs):
            if first_id in by_id and second_id in by_id:
                pairs.append(ComparisonPair(by_id[first_id], by_id[second_id]))
                if index < snapshot.cursor:
                    cursor += 1
            else:
                dropped += 1
        if dropped:
            logger.warning(f"Dropped {dropped} saved pair(s) whose items are no longer in {category.label}")

        if len(candidates) < 2 or not pairs:
            logger.warning(f"Saved ranking of {category.label} no longer has enough items, discarding it")
            self._clear_session()
            return None

        win_counts = {k: v for k, v in snapshot.win_counts.items() if k in by_id}
        self.run = TournamentRun(category=category, candidates=candidates, pairs=pairs, cursor=cursor, win_counts=win_counts)
        self.state = TournamentState.ACTIVE
        logger.info(f"Resumed ranking of {category.label} at pair {cursor}/{len(pairs)}")

        if self.run.finished:
            self._commit()
        return self.run
