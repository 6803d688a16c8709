from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple

from .constants import (
    ANIME_STATUS_LABELS,
    MANGA_STATUS_LABELS,
    RATING_WEIGHT,
    RANKING_WEIGHT,
    RANK_FACTOR_STEP,
)
from .logging import InvalidStatusError

# (media_id, is_anime, is_rewatch, rewatch_count)
RecordKey = Tuple[int, bool, bool, int]


class Status(Enum):
    """Lifecycle state of a library entry. The same five states exist for anime and manga."""
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    DROPPED = "dropped"

    def label(self, is_anime: bool) -> str:
        """Returns the media-specific display name ('Currently Watching', 'Want to Read')."""
        labels = ANIME_STATUS_LABELS if is_anime else MANGA_STATUS_LABELS
        return labels[self.value]

    @classmethod
    def parse(cls, value: Any) -> "Status":
        """
        Accepts a Status, an enum value ('on_hold'), a member name ('ON_HOLD')
        or a display label ('Lost Interest', 'Want to Read').
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            for status in cls:
                if text in (
                    status.value,
                    status.name.lower(),
                    status.value.replace("_", " "),
                    ANIME_STATUS_LABELS[status.value].lower(),
                    MANGA_STATUS_LABELS[status.value].lower(),
                ):
                    return status
        raise InvalidStatusError(f"Unknown status: {value!r}")


def media_label(is_anime: bool) -> str:
    return "Anime" if is_anime else "Manga"


def _format_date(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class Item:
    """
    One library entry: a primary record for a title, or one numbered
    rewatch of it. Items are values; every change builds a new Item.
    """
    media_id: int
    is_anime: bool
    title: str
    status: Status
    cover_image: str = ""
    progress: int = 0
    rank: int = 0
    score: float = 0.0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_rewatch: bool = False
    rewatch_count: int = 0
    summary: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    total_units: Optional[int] = None

    @property
    def identity(self) -> Tuple[int, bool]:
        """The title this record belongs to, shared by the primary record and all its rewatches."""
        return (self.media_id, self.is_anime)

    @property
    def record_key(self) -> RecordKey:
        """Storage identity: unique per persisted record."""
        return (self.media_id, self.is_anime, self.is_rewatch, self.rewatch_count)

    @property
    def is_ranked(self) -> bool:
        return self.rank > 0

    @property
    def composite_score(self) -> float:
        """
        Weighted blend of the user's rating and their ranking.

        The rating (0-10) is scaled to 100; rank 1 is worth 100, rank 2 is
        worth 90 and so on down to 0. Rating counts for 70%, ranking for 30%.
        """
        normalized_rating = self.score * 10
        ranking_factor = max(0, 100 - (self.rank - 1) * RANK_FACTOR_STEP)
        return normalized_rating * RATING_WEIGHT + ranking_factor * RANKING_WEIGHT

    def with_changes(self, **changes: Any) -> "Item":
        """Returns a copy of this item with the given fields replaced."""
        return replace(self, **changes)

    def display_name(self) -> str:
        if self.is_rewatch:
            return f"{self.title} (Rewatch #{self.rewatch_count})"
        return self.title

    @classmethod
    def start_rewatch_from(cls, item: "Item", number: int, started: datetime) -> "Item":
        """Builds a fresh in-progress rewatch of an already-completed title."""
        return replace(
            item,
            status=Status.IN_PROGRESS,
            rank=0,
            score=0.0,
            progress=0,
            start_date=started,
            end_date=None,
            is_rewatch=True,
            rewatch_count=number,
        )

    @classmethod
    def completed_rewatch(cls, rewatch: "Item", end_date: datetime, total_units: int) -> "Item":
        """Builds the completed form of an in-progress rewatch, keeping its number and start date."""
        return replace(
            rewatch,
            status=Status.COMPLETED,
            end_date=end_date,
            progress=total_units,
            is_rewatch=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["start_date"] = _format_date(self.start_date)
        data["end_date"] = _format_date(self.end_date)
        data["genres"] = list(self.genres)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        # Filter unknown keys so older or newer records still load
        valid_keys = cls.__dataclass_fields__.keys()
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        filtered["status"] = Status.parse(filtered["status"])
        filtered["start_date"] = _parse_date(filtered.get("start_date"))
        filtered["end_date"] = _parse_date(filtered.get("end_date"))
        filtered["genres"] = list(filtered.get("genres") or [])
        return cls(**filtered)


@dataclass(frozen=True)
class ComparisonPair:
    """Two items shown side by side; the user picks the one they prefer."""
    first: Item
    second: Item

    @property
    def ids(self) -> Tuple[int, int]:
        return (self.first.media_id, self.second.media_id)

    def contains(self, media_id: int) -> bool:
        return media_id in self.ids


@dataclass(frozen=True)
class RankingCategory:
    """
    The candidate set of a tournament: the non-rewatch items of one bucket.
    Ranks are positions within a bucket, so a tournament never spans two.
    """
    is_anime: bool
    status: Status = Status.COMPLETED

    @property
    def label(self) -> str:
        if self.status == Status.COMPLETED:
            return media_label(self.is_anime)
        return f"{media_label(self.is_anime)} ({self.status.label(self.is_anime)})"

    def to_dict(self) -> Dict[str, Any]:
        return {"is_anime": self.is_anime, "status": self.status.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RankingCategory":
        return cls(
            is_anime=bool(data["is_anime"]),
            status=Status.parse(data.get("status", Status.COMPLETED.value)),
        )
