from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

INTEREST_CATEGORY_MAP: dict[str, str] = {
    "food": "restaurant",
    "restaurants": "restaurant",
    "dining": "restaurant",
    "art": "museum",
    "museums": "museum",
    "culture": "museum",
    "history": "museum",
    "parks": "park",
    "outdoors": "park",
    "nature": "park",
    "shopping": "shopping_mall",
    "fitness": "gym",
    "coffee": "cafe",
    "cafes": "cafe",
    "entertainment": "movie_theater",
    "movies": "movie_theater",
    "drinks": "bar",
    "bars": "bar",
    "nightlife": "night_club",
    "clubs": "night_club",
    "music": "night_club",
    "attractions": "tourist_attraction",
}
DEFAULT_CATEGORY = "point_of_interest"


@dataclass(frozen=True)
class RetrievalConfig:
    places_api_key: str = os.getenv("GOOGLE_PLACES_API_KEY", "")
    places_radius: int = 3000  # metres
    max_details_fetch: int = 15
    details_workers: int = 4
    timeout: float = 5.0
    vector_index_name: str = "venues"
    vector_top_k: int = 30
    venues_table: str = "venues"
    fallback_limit: int = 30
    category_map: dict[str, str] = field(default_factory=lambda: dict(INTEREST_CATEGORY_MAP))

    def category_for(self, interest: str) -> str:
        return self.category_map.get(interest.strip().lower(), DEFAULT_CATEGORY)


@dataclass(frozen=True)
class DataStoreConfig:
    data_dir: Path = Path(os.getenv("ITINERARY_DATA_DIR", str(Path(__file__).resolve().parent.parent / "data")))
    persist: bool = False


DEFAULT_RETRIEVAL_CONFIG = RetrievalConfig()
DEFAULT_DATA_STORE_CONFIG = DataStoreConfig()
