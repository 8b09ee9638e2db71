# cart_engine/services/transport.py
from typing import Any, Callable

import requests

from cart_engine.utils.retry import http_retry
from cart_engine.utils.settings import CART_API_URL, HTTP_TIMEOUT_SECONDS
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

IDEMPOTENT_METHODS = {"GET", "PUT", "PATCH", "DELETE"}


class HttpTransport:
    """
    Warstwa HTTP pod bramka koszyka: base url, timeout, naglowek Authorization
    i retry z backoffem (tylko metody idempotentne, tylko bledy polaczenia/timeouty).
    POST nie jest powtarzany, zeby nie dodac produktu dwa razy.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        session: Any = None,
        token_provider: Callable[[], str | None] | None = None,
    ):
        self.base_url = (base_url or CART_API_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.token_provider = token_provider

    def request(self, method: str, path: str, json: dict | None = None):
        method = method.upper()
        if method in IDEMPOTENT_METHODS:
            return self._send_with_retry(method, path, json)
        return self._send(method, path, json)

    @http_retry()
    def _send_with_retry(self, method: str, path: str, json: dict | None):
        return self._send(method, path, json)

    def _send(self, method: str, path: str, json: dict | None):
        url = f"{self.base_url}{path}"
        logger.info(f"HttpTransport {method} {url}")

        headers = {"Accept": "application/json"}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        return self.session.request(
            method,
            url,
            json=json,
            headers=headers,
            timeout=self.timeout,
        )
