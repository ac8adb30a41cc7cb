"""
HttpxTransport - fire-and-forget JSON POSTs for the tracker.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class HttpxTransport:
    """
    Posts tracker submissions on a small worker pool.

    ``send`` returns immediately. Nothing is retried and nothing raises;
    network errors, non-2xx responses and unserializable payloads are logged
    at WARNING.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        max_workers: int = 2,
        client: httpx.Client | None = None,
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tracker")

    def send(self, endpoint: str, payload: dict[str, Any]) -> Future[None] | None:
        try:
            return self._executor.submit(self._post, endpoint, payload)
        except RuntimeError:
            logger.warning("Analytics: transport closed, dropping %s", endpoint)
            return None

    def _post(self, endpoint: str, payload: dict[str, Any]) -> None:
        try:
            response = self._client.post(endpoint, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Analytics: error sending %s: %s", endpoint, e)
            return
        except (TypeError, ValueError) as e:
            logger.warning("Analytics: could not serialize %s payload: %s", endpoint, e)
            return
        except Exception:
            logger.warning("Analytics: unexpected error sending %s", endpoint, exc_info=True)
            return

        if response.is_error:
            logger.warning("Analytics: %s returned %d", endpoint, response.status_code)

    def close(self) -> None:
        """Wait for queued sends, then release the client."""
        self._executor.shutdown(wait=True)
        self._client.close()
