"""
services/catalog_service.py — Third-party track catalog (TrackCatalogGateway).

The catalog is only consulted to find tracks; it plays no part in voting or
ranking. The default gateway queries the public Deezer search API, which
needs no API key.

Failure policy: any transport error, non-2xx status or undecodable body is
raised as CatalogUnavailableError (502, retryable). An empty query, or an
upstream response without results, is an empty list, not an error.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

import requests

from trackvote.app.errors import CatalogUnavailableError

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.deezer.com"


@dataclass(slots=True)
class CatalogTrack:
    """A track as described by the external catalog."""

    catalog_id: str
    title: str
    artists: list[str] = field(default_factory=list)
    album_name: str | None = None
    artwork_url: str | None = None
    preview_url: str | None = None

    @property
    def artist_display(self) -> str:
        return ", ".join(self.artists)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class TrackCatalogGateway(Protocol):
    def search(self, query: str) -> list[CatalogTrack]:
        ...


def _parse_deezer_track(item: dict[str, Any]) -> CatalogTrack:
    artist = item.get("artist") or {}
    album = item.get("album") or {}
    return CatalogTrack(
        catalog_id=str(item["id"]),
        title=item["title"],
        artists=[artist["name"]] if artist.get("name") else [],
        album_name=album.get("title"),
        artwork_url=album.get("cover_medium"),
        # Deezer sends "" when a track has no preview clip.
        preview_url=item.get("preview") or None,
    )


class DeezerCatalogGateway:
    """Searches https://api.deezer.com/search."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10,
        limit: int = 10,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.limit = limit

    def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        response = requests.get(
            f"{self.base_url}{path}",
            params=params,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def search(self, query: str) -> list[CatalogTrack]:
        query = (query or "").strip()
        if not query:
            return []

        try:
            data = self._get("/search", {"q": query, "limit": self.limit})
        except requests.RequestException as exc:
            # Also covers JSON decode failures (requests.JSONDecodeError).
            LOGGER.warning("Catalog search failed for %r: %s", query, exc)
            raise CatalogUnavailableError() from exc

        if not isinstance(data, dict):
            LOGGER.warning("Catalog search for %r returned a non-object body", query)
            raise CatalogUnavailableError()

        # Deezer reports quota and query errors with HTTP 200 and an "error" object.
        if "error" in data:
            LOGGER.warning("Catalog search for %r returned error: %s", query, data["error"])
            raise CatalogUnavailableError()

        try:
            return [_parse_deezer_track(item) for item in data.get("data") or []]
        except (KeyError, TypeError) as exc:
            LOGGER.warning("Malformed catalog result for %r: %s", query, exc)
            raise CatalogUnavailableError() from exc


def gateway_from_config(config: dict) -> DeezerCatalogGateway:
    """Builds the gateway from Flask app.config keys."""
    return DeezerCatalogGateway(
        base_url=config.get("CATALOG_BASE_URL", DEFAULT_BASE_URL),
        timeout=config.get("CATALOG_TIMEOUT_SECONDS", 10),
        limit=config.get("CATALOG_SEARCH_LIMIT", 10),
    )
