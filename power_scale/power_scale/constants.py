"""
Constants used throughout the PowerScale application.
"""

# Storage Configuration
DEFAULT_DATA_DIR = ".power_scale"
PRIMARY_DB_FILENAME = "power_scale.db"
BACKUP_FILENAME = "power_scale_backup.json"
SESSION_FILENAME = "power_scale_session.json"
LOG_FILENAME = "power_scale.log"

# Jikan (MyAnimeList) API Configuration
JIKAN_BASE_URL = "https://api.jikan.moe/v4"
JIKAN_RATE_LIMIT_DELAY = 1.2
JIKAN_TIMEOUT_SECONDS = 10
UNKNOWN_TITLE = "Unknown"

# Status display labels, indexed by (is_anime)
ANIME_STATUS_LABELS = {
    "planned": "Want to Watch",
    "in_progress": "Currently Watching",
    "completed": "Completed",
    "on_hold": "On Hold",
    "dropped": "Lost Interest",
}
MANGA_STATUS_LABELS = {
    "planned": "Want to Read",
    "in_progress": "Currently Reading",
    "completed": "Completed",
    "on_hold": "On Hold",
    "dropped": "Lost Interest",
}

# Composite score weighting (rating 0-10 scaled to 100, rank 1 = 100, rank 2 = 90, ...)
RATING_WEIGHT = 0.7
RANKING_WEIGHT = 0.3
RANK_FACTOR_STEP = 10
MAX_RATING = 10.0

# Display Configuration
STATUS_COLORS = {
    "completed": "green",
    "in_progress": "blue",
    "planned": "yellow",
    "on_hold": "magenta",
    "dropped": "red",
}
