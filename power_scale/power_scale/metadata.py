import logging
import time
import requests
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

from .constants import JIKAN_BASE_URL, JIKAN_RATE_LIMIT_DELAY, JIKAN_TIMEOUT_SECONDS, UNKNOWN_TITLE
from .models import media_label

logger = logging.getLogger(__name__)


@dataclass
class TitleMetadata:
    """
    Descriptive fields for one title, copied onto an Item when it is first filed.
    """
    media_id: int
    is_anime: bool
    title: str = UNKNOWN_TITLE
    cover_image: str = ""
    genres: List[str] = field(default_factory=list)
    total_units: Optional[int] = None
    summary: Optional[str] = None

    @classmethod
    def from_jikan(cls, media_id: int, is_anime: bool, data: Dict[str, Any]) -> "TitleMetadata":
        images = data.get("images") or {}
        cover = (images.get("jpg") or {}).get("large_image_url") or (images.get("jpg") or {}).get("image_url") or ""
        genres = [g["name"] for g in data.get("genres", []) if g.get("name")]
        total_units = data.get("episodes") if is_anime else data.get("chapters")
        return cls(
            media_id=media_id,
            is_anime=is_anime,
            title=data.get("title_english") or data.get("title") or UNKNOWN_TITLE,
            cover_image=cover,
            genres=genres,
            total_units=total_units,
            summary=data.get("synopsis"),
        )


class MetadataClient:
    """Looks titles up on Jikan (MyAnimeList) by id."""

    def __init__(
        self,
        base_url: str = JIKAN_BASE_URL,
        rate_limit_delay: float = JIKAN_RATE_LIMIT_DELAY,
        timeout: int = JIKAN_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.rate_limit_delay = rate_limit_delay
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_title_metadata(self, media_id: int, is_anime: bool) -> Optional[TitleMetadata]:
        """
        Fetches the title, cover, genres and episode/chapter count of one title.
        Returns None if the lookup fails.
        """
        kind = "anime" if is_anime else "manga"
        url = f"{self.base_url}/{kind}/{media_id}"
        try:
            time.sleep(self.rate_limit_delay)  # Rate limiting
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json().get("data")
            if not data:
                logger.warning(f"Jikan returned no data for {kind} {media_id}")
                return None
            metadata = TitleMetadata.from_jikan(media_id, is_anime, data)
            logger.info(f"Fetched {media_label(is_anime)} metadata for {media_id}: {metadata.title}")
            return metadata
        except requests.RequestException as e:
            logger.error(f"Jikan API error for {kind} {media_id}: {e}")
            return None
        except ValueError as e:
            logger.error(f"Invalid Jikan response for {kind} {media_id}: {e}")
            return None


def fetch_title_metadata(media_id: int, is_anime: bool) -> Optional[TitleMetadata]:
    """Convenience lookup using the configured Jikan endpoint."""
    from .config import get_jikan_config

    jikan = get_jikan_config()
    client = MetadataClient(jikan.base_url, jikan.rate_limit_delay, jikan.timeout)
    return client.fetch_title_metadata(media_id, is_anime)
