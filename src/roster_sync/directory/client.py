import logging
import time
from typing import Optional

import requests

from .auth import DirectoryAuth

logger = logging.getLogger(__name__)


class DirectoryClient:
    """Low-level HTTP client for the Admin SDK Directory API with retry logic."""

    BASE_URL = "https://admin.googleapis.com/admin/directory/v1"

    def __init__(
        self,
        auth: DirectoryAuth,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self._auth = auth
        self._session = session or requests.Session()
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay
        self._timeout = timeout

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._auth.get_token()}",
            "Content-Type": "application/json",
        }

    def get(self, path: str, params: dict = None) -> requests.Response:
        return self._request("GET", path, params=params)

    def post(self, path: str, json: dict = None, params: dict = None) -> requests.Response:
        return self._request("POST", path, json=json, params=params)

    def put(self, path: str, json: dict = None) -> requests.Response:
        return self._request("PUT", path, json=json)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.BASE_URL}{path}" if path.startswith("/") else path

        for attempt in range(self._max_retries):
            last_attempt = attempt == self._max_retries - 1
            try:
                resp = self._session.request(
                    method, url, headers=self._headers(), timeout=self._timeout, **kwargs
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                if last_attempt:
                    raise
                wait = self._retry_delay * 2**attempt
                logger.warning(f"{method} {path} failed ({e}), retrying in {wait}s")
                time.sleep(wait)
                continue

            if resp.status_code == 429 and not last_attempt:  # Rate limited
                retry_after = int(resp.headers.get("Retry-After", 60))
                logger.warning(f"Rate limited by Directory API, retrying in {retry_after}s")
                time.sleep(retry_after)
                continue

            if resp.status_code >= 500 and not last_attempt:
                wait = self._retry_delay * 2**attempt
                logger.warning(f"Server error {resp.status_code}, retrying in {wait}s")
                time.sleep(wait)
                continue

            resp.raise_for_status()
            return resp

        # Unreachable: the final attempt either returns or raises
        raise RuntimeError(f"{method} {path} exhausted {self._max_retries} attempts")
