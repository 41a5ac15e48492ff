"""
City directory: maps city names to climate areas (A-D).

Loaded once at process start from a JSON list of `{"city", "area"}`
records and handed to request handlers through app state.
"""
import json
from typing import Dict, List, Optional

from logger import get_logger

logger = get_logger(__name__)


class CityDirectory:
    """Read-through cache over the cities file."""

    def __init__(self, path: Optional[str] = None, cities: Optional[List[Dict[str, str]]] = None):
        self.path = path
        self._cities = cities

    def load(self) -> List[Dict[str, str]]:
        if self._cities is not None:
            return self._cities
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                self._cities = json.load(f)
            logger.info("Loaded %d cities from %s", len(self._cities), self.path)
        except (OSError, ValueError, TypeError) as e:
            logger.error("Error loading cities data from %s: %s", self.path, e)
            self._cities = []
        return self._cities

    def search(self, query: str) -> List[Dict[str, str]]:
        cities = self.load()
        if not query:
            return list(cities)
        needle = query.lower()
        return [city for city in cities if needle in city["city"].lower()]

    def get(self, name: str) -> Optional[Dict[str, str]]:
        wanted = (name or "").strip().lower()
        for city in self.load():
            if city["city"].lower() == wanted:
                return city
        return None

    def area_for(self, name: Optional[str]) -> Optional[str]:
        city = self.get(name or "")
        return city["area"] if city else None
