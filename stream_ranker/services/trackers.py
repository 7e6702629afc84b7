# stream_ranker/services/trackers.py

import time

import httpx

from ..config import DEFAULT_TRACKERS_URL, TRACKER_CACHE_TTL_SECONDS, logger


class TrackerListCache:
    """
    Keeps the public tracker list in memory and refreshes it once it is
    older than ``ttl_seconds``. A failed refresh keeps the previous list.
    """

    def __init__(
        self,
        url: str = DEFAULT_TRACKERS_URL,
        ttl_seconds: float = TRACKER_CACHE_TTL_SECONDS,
        timeout: float = 30,
    ) -> None:
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self._trackers: list[str] = []
        self._fetched_at = 0.0

    @property
    def trackers(self) -> list[str]:
        return list(self._trackers)

    def is_fresh(self) -> bool:
        return bool(self._trackers) and (
            time.monotonic() - self._fetched_at < self.ttl_seconds
        )

    async def get(self) -> list[str]:
        if self.is_fresh():
            logger.debug("[TRACKERS] Using cached public trackers.")
            return self.trackers

        logger.info(f"[TRACKERS] Fetching public trackers from {self.url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True
            ) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                body = response.text
        except httpx.HTTPError as exc:
            logger.error(
                f"[TRACKERS] Error fetching public trackers: {exc}. "
                f"Keeping {len(self._trackers)} cached trackers."
            )
            return self.trackers

        trackers = [line.strip() for line in body.splitlines() if line.strip()]
        if not trackers:
            logger.warning("[TRACKERS] Tracker list was empty; keeping cached list.")
            return self.trackers

        self._trackers = trackers
        self._fetched_at = time.monotonic()
        logger.info(f"[TRACKERS] Cached {len(trackers)} public trackers.")
        return self.trackers
