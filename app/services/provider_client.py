# app/services/provider_client.py
import requests
from requests import RequestException

from app.domain.errors import RemoteSyncError
from app.utils.settings import PROVIDER_PROXY_URL, PROVIDER_TIMEOUT_SECONDS
from app.utils.logging import get_logger

logger = get_logger(__name__)

CARTS_PATH = "/carts"
CART_ITEMS_PATH = "/carts/{cart_id}/items"


class ProviderClient:
    """Commerce provider API, reached through a single proxy endpoint.

    Every call is one POST of ``{method, path, query, body, headers, timeoutMs}``
    to the proxy, which answers ``{result}`` or ``{error}``. Calls are not
    retried: any failure surfaces as ``RemoteSyncError``.
    """

    def __init__(self, proxy_url: str | None = None, timeout: float | None = None, session=None):
        self.proxy_url = proxy_url or PROVIDER_PROXY_URL
        self.timeout = timeout or PROVIDER_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def request(self, method: str, path: str, query=None, body=None, headers=None, timeout: float | None = None):
        timeout = timeout or self.timeout
        payload = {
            "method": method.upper(),
            "path": path,
            "query": query,
            "body": body,
            "headers": headers or {},
            "timeoutMs": int(timeout * 1000),
        }
        logger.info(f"ProviderClient {payload['method']} {path}")

        try:
            resp = self.session.post(self.proxy_url, json=payload, timeout=timeout)
        except requests.Timeout as e:
            raise RemoteSyncError(f"Provider call {method} {path} timed out after {timeout}s", code="timeout") from e
        except RequestException as e:
            raise RemoteSyncError(f"Provider call {method} {path} failed: {e}", code="transport") from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            err = data["error"]
            message = err if isinstance(err, str) else err.get("message")
            code = None if isinstance(err, str) else err.get("code")
            raise RemoteSyncError(message or "Provider API error", code=code, details=err)

        if resp.status_code >= 400:
            raise RemoteSyncError(f"Provider call {method} {path} returned HTTP {resp.status_code}", code=str(resp.status_code))

        if not isinstance(data, dict):
            return data
        if "result" in data:
            return data["result"]
        if "data" in data:
            return data["data"]
        return data

    def create_cart(self, payload: dict) -> dict:
        return self.request("POST", CARTS_PATH, body=payload, headers={"Content-Type": "application/json"})

    def add_line_item(self, remote_cart_id: str, payload: dict) -> dict:
        if not remote_cart_id:
            raise RemoteSyncError("remote cart id required", code="invalid_request")
        path = CART_ITEMS_PATH.format(cart_id=remote_cart_id)
        return self.request(
            "POST", path, body={**payload, "cart_id": remote_cart_id}, headers={"Content-Type": "application/json"}
        )

    def remove_line_item(self, remote_cart_id: str, payload: dict) -> dict:
        if not remote_cart_id:
            raise RemoteSyncError("remote cart id required", code="invalid_request")
        path = CART_ITEMS_PATH.format(cart_id=remote_cart_id)
        return self.request(
            "DELETE", path, body={**payload, "cart_id": remote_cart_id}, headers={"Content-Type": "application/json"}
        )
