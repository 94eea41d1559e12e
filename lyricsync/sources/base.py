from __future__ import annotations

import logging
import threading
import time
from typing import Any

import requests

from lyricsync.config import DEFAULT_USER_AGENT
from lyricsync.lyrics.model import SourceResult, TrackIdentity

logger = logging.getLogger(__name__)

__all__ = ["HttpClient", "HttpLyricsSource", "LyricsSource", "SourceResult"]


class LyricsSource:
    name: str

    def fetch(self, track: TrackIdentity) -> SourceResult | None:
        raise NotImplementedError


class HttpClient:
    """
    Shared HTTP plumbing: one session, a per-provider timeout, retries with
    linear backoff and an optional minimum interval between calls.
    """

    name = "http"

    def __init__(
        self,
        *,
        timeout_s: float = 10.0,
        max_retries: int = 2,
        backoff_base_s: float = 0.5,
        min_interval_s: float = 0.0,
        user_agent: str = DEFAULT_USER_AGENT,
        session: requests.Session | None = None,
    ):
        self.timeout_s = timeout_s
        self.max_retries = max(max_retries, 1)
        self.backoff_base_s = backoff_base_s
        self.min_interval_s = min_interval_s
        self.user_agent = user_agent
        self.session = session or requests.Session()
        self._last_call_time = 0.0
        self._rate_lock = threading.Lock()

    def _throttled(self) -> bool:
        with self._rate_lock:
            now = time.time()
            if self._last_call_time and now - self._last_call_time < self.min_interval_s:
                return True
            self._last_call_time = now
            return False

    def _get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
    ) -> requests.Response | None:
        """
        GET with retries. Returns the response for 2xx and 404, None when the
        provider is unreachable or keeps failing.
        """
        if self.min_interval_s and self._throttled():
            logger.info("%s: rate limited locally, skipping request", self.name)
            return None

        hdrs = {"User-Agent": self.user_agent}
        if headers:
            hdrs.update(headers)

        for attempt in range(1, self.max_retries + 1):
            try:
                r = self.session.get(url, params=params, headers=hdrs, timeout=timeout_s or self.timeout_s)
                if r.status_code == 404:
                    return r
                r.raise_for_status()
                return r
            except requests.RequestException as e:
                logger.warning("%s error (attempt %s/%s): %s", self.name, attempt, self.max_retries, e)
                if attempt == self.max_retries:
                    return None
                time.sleep(self.backoff_base_s * attempt)
        return None

    def _get_json(self, url: str, **kwargs: Any) -> Any | None:
        r = self._get(url, **kwargs)
        if r is None or r.status_code == 404:
            return None
        try:
            return r.json()
        except ValueError as e:
            logger.warning("%s: invalid JSON from %s: %s", self.name, url, e)
            return None


class HttpLyricsSource(HttpClient, LyricsSource):
    pass
