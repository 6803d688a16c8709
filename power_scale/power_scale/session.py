"""
Save/resume storage for an unfinished tournament.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .models import RankingCategory
from .logging import InvalidStatusError, PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class TournamentSnapshot:
    """Everything needed to pick a run back up at the next pair."""
    category: RankingCategory
    pairs: List[Tuple[int, int]]
    cursor: int
    win_counts: Dict[int, int] = field(default_factory=dict)
    active_ids: List[int] = field(default_factory=list)
    saved_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "category": self.category.to_dict(),
            "pairs": [list(p) for p in self.pairs],
            "cursor": self.cursor,
            # JSON object keys are strings
            "win_counts": {str(k): v for k, v in self.win_counts.items()},
            "active_ids": list(self.active_ids),
            "saved_at": (self.saved_at or datetime.now()).isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "TournamentSnapshot":
        saved_at = data.get("saved_at")
        return cls(
            category=RankingCategory.from_dict(data["category"]),
            pairs=[(int(a), int(b)) for a, b in data["pairs"]],
            cursor=int(data["cursor"]),
            win_counts={int(k): int(v) for k, v in data.get("win_counts", {}).items()},
            active_ids=[int(i) for i in data.get("active_ids", [])],
            saved_at=datetime.fromisoformat(saved_at) if saved_at else None,
        )


class SessionStore:
    """Keeps at most one saved tournament in a JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, snapshot: TournamentSnapshot) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Failed to save tournament session to {self.path}: {e}") from e
        logger.debug(f"Tournament session saved at pair {snapshot.cursor}/{len(snapshot.pairs)}")

    def load(self) -> Optional[TournamentSnapshot]:
        """
        Returns the saved snapshot, or None if there is none.

        An unreadable file is treated as no session and logged.
        """
        if not self.path.exists():
            logger.debug(f"No saved tournament session at {self.path}")
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return TournamentSnapshot.from_dict(json.load(f))
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, InvalidStatusError) as e:
            logger.warning(f"Failed to load tournament session: {e}")
            return None

    def clear(self) -> bool:
        if not self.path.exists():
            return False
        try:
            self.path.unlink()
        except OSError as e:
            raise PersistenceError(f"Failed to clear tournament session {self.path}: {e}") from e
        logger.debug("Tournament session cleared")
        return True


class MemorySessionStore(SessionStore):
    """Session storage that lives only as long as the process."""

    def __init__(self):
        self._data: Optional[Dict] = None

    def exists(self) -> bool:
        return self._data is not None

    def save(self, snapshot: TournamentSnapshot) -> None:
        self._data = snapshot.to_dict()

    def load(self) -> Optional[TournamentSnapshot]:
        return TournamentSnapshot.from_dict(self._data) if self._data is not None else None

    def clear(self) -> bool:
        had = self._data is not None
        self._data = None
        return had
