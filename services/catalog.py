import random
from typing import Any, Dict, List, Optional

import httpx

from constants import (
    CATALOG_API_KEY, CATALOG_BASE_URL, CATALOG_IMAGE_BASE_URL, CATALOG_TIMEOUT_SECONDS, CANDIDATE_COUNT,
)
from errors import CatalogError
from schemas.rooms import Candidate
from logging_config import get_logger

logger = get_logger(__name__)

DISCOVER_PATHS = {"MOVIE": "/discover/movie", "TV": "/discover/tv"}
MIN_VOTE_COUNT = 50
MAX_PAGE = 5


def _standardize(item: Dict[str, Any], kind: str) -> Optional[Candidate]:
    """Map a discover result onto a Candidate. Items without a poster are dropped."""
    poster = item.get("poster_path")
    if not poster:
        return None
    return Candidate(
        id=int(item["id"]),
        title=item.get("title") or item.get("name") or "",
        overview=item.get("overview") or "",
        poster_path=f"{CATALOG_IMAGE_BASE_URL}{poster}",
        release_date=item.get("release_date") or item.get("first_air_date") or "",
        kind=kind,
    )


class CatalogClient:
    """Content discovery collaborator: ``fetch_candidates(kind, tags) -> [Candidate]``."""

    def __init__(self, base_url: str = CATALOG_BASE_URL, api_key: str = CATALOG_API_KEY,
                 timeout: float = CATALOG_TIMEOUT_SECONDS, count: int = CANDIDATE_COUNT,
                 transport: httpx.BaseTransport = None):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.count = count
        self.transport = transport

    def _params(self, tags: List[int], page: int) -> Dict[str, Any]:
        params = {
            "api_key": self.api_key,
            "sort_by": "popularity.desc",
            "include_adult": "false",
            "vote_count.gte": MIN_VOTE_COUNT,
            "page": page,
        }
        if tags:
            # any of the selected tags
            params["with_genres"] = "|".join(str(t) for t in tags)
        return params

    def fetch_candidates(self, kind: str, tags: List[int]) -> List[Candidate]:
        if not self.api_key:
            raise CatalogError("CATALOG_API_KEY is not configured")
        url = f"{self.base_url}{DISCOVER_PATHS[kind]}"
        candidates: Dict[int, Candidate] = {}
        pages = random.sample(range(1, MAX_PAGE + 1), k=MAX_PAGE)
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                for page in pages:
                    if len(candidates) >= self.count:
                        break
                    resp = client.get(url, params=self._params(tags, page))
                    if resp.status_code != 200:
                        raise CatalogError(f"Catalog API error: HTTP {resp.status_code}")
                    for item in resp.json().get("results", []):
                        candidate = _standardize(item, kind)
                        if candidate is not None:
                            candidates.setdefault(candidate.id, candidate)
        except httpx.HTTPError as e:
            logger.error(f"Catalog request failed for {kind} tags={tags}: {e}", exc_info=True)
            raise CatalogError(f"Failed to fetch candidates: {e}") from e

        result = list(candidates.values())
        random.shuffle(result)
        logger.info(f"Fetched {len(result)} {kind} candidates for tags={tags}")
        return result[:self.count]
