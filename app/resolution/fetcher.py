"""
app/resolution/fetcher.py

Network lookups behind the entity resolution cache.

A fetcher performs exactly one request per call; retries and concurrency
belong to the cache.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import requests

from app.config import ResolutionCacheSettings
from app.errors import EntityFetchError

logger = logging.getLogger(__name__)


class EntityFetcher(Protocol):
    def fetch(self, entity_type: str, ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        """
        Return ``id -> entity`` for the ids that exist. Missing ids are simply absent.

        Any exception is treated by the cache as a failed attempt and retried.
        """


class HttpEntityFetcher:
    """
    Resolves ids through ``GET {base_url}/api/entities/{entity_type}?ids=a,b``.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: ResolutionCacheSettings) -> HttpEntityFetcher:
        return cls(base_url=settings.api_base_url, timeout_seconds=settings.timeout_seconds)

    def fetch(self, entity_type: str, ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        url = f"{self._base_url}/api/entities/{entity_type}"
        try:
            response = self._session.get(
                url,
                params={"ids": ",".join(ids)},
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            logger.debug(
                "Entity lookup request failed entity_type=%s ids=%s status=%s error=%s",
                entity_type,
                len(ids),
                status_code,
                exc,
            )
            raise EntityFetchError(f"Entity lookup failed for {entity_type}: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise EntityFetchError(f"Entity lookup for {entity_type} returned invalid JSON.") from exc

        entities = body.get("entities") if isinstance(body, dict) else None
        if not isinstance(entities, dict):
            raise EntityFetchError(f"Entity lookup for {entity_type} returned no 'entities' object.")
        return {str(key): value for key, value in entities.items() if isinstance(value, dict)}
