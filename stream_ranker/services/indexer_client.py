# stream_ranker/services/indexer_client.py

from __future__ import annotations

from typing import Any, Mapping

import httpx

from ..config import (
    DEFAULT_INDEXER_TIMEOUT,
    DEFAULT_MAX_RESULTS,
    PLACEHOLDER_API_KEY,
    ServiceConfig,
    logger,
)
from .torrent_data import RawResult

_RESULTS_PATH = "/api/v2.0/indexers/all/results/torznab/api"
_SEARCH_KEYS = ("q", "cat", "imdbid", "tmdbid")


class IndexerError(RuntimeError):
    """Raised when the indexer cannot be queried or returns garbage."""


class IndexerClient:
    """Thin async client for the Torznab JSON endpoint of a Jackett instance."""

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None,
        timeout: float = DEFAULT_INDEXER_TIMEOUT,
        limit: int = DEFAULT_MAX_RESULTS,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key or ""
        self.timeout = timeout
        self.limit = limit

    @classmethod
    def from_config(
        cls, service_config: ServiceConfig, limit: int = DEFAULT_MAX_RESULTS
    ) -> "IndexerClient":
        return cls(
            service_config.indexer_url,
            service_config.indexer_api_key,
            timeout=service_config.indexer_timeout,
            limit=limit,
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url) and bool(self.api_key) and (
            self.api_key != PLACEHOLDER_API_KEY
        )

    def build_params(self, search_params: Mapping[str, Any]) -> dict[str, Any]:
        params: dict[str, Any] = {
            "apikey": self.api_key,
            "o": "json",
            "limit": self.limit,
        }
        for key in _SEARCH_KEYS:
            value = search_params.get(key)
            if value:
                params[key] = value
        return params

    async def search(self, search_params: Mapping[str, Any]) -> list[RawResult]:
        """
        Runs one indexer query and maps its ``Results`` onto ``RawResult``.

        Raises ``IndexerError`` when the client is not configured or the
        request fails. Individual records that cannot be mapped are skipped.
        """
        if not self.configured:
            logger.error("[INDEXER] Indexer URL or API key not configured.")
            raise IndexerError("Indexer URL or API key is not configured.")

        url = f"{self.base_url}{_RESULTS_PATH}"
        params = self.build_params(search_params)
        logged_params = {k: v for k, v in params.items() if k != "apikey"}
        logger.debug(f"[INDEXER] Fetching {url} with {logged_params}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True
            ) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise IndexerError(
                f"Indexer responded with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise IndexerError(f"Indexer request failed: {exc}") from exc
        except ValueError as exc:  # JSON decode
            raise IndexerError(f"Indexer returned invalid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise IndexerError(f"Unexpected indexer payload type {type(payload)}")

        records = payload.get("Results") or []
        if not isinstance(records, list):
            raise IndexerError("Indexer payload 'Results' is not a list")

        results: list[RawResult] = []
        for record in records:
            try:
                results.append(RawResult.from_indexer(record))
            except (TypeError, ValueError) as exc:
                logger.warning(f"[INDEXER] Skipping unreadable record: {exc}")
        logger.info(
            f"[INDEXER] Query {logged_params} returned {len(results)} results."
        )
        return results
