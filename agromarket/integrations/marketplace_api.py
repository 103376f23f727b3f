"""
REST client for the marketplace backend of record.

Wraps the cart, order, Paystack and catalog resources. Every request carries
the bearer credential of the explicit SessionContext it was built with.

Example:
```python
async with MarketplaceApi(SessionContext(token="..."), base_url="http://localhost:3000/api") as api:
    items = await api.get_cart()
```
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from agromarket.core.config import ApiConfig
from agromarket.core.exceptions import BackendError, BackendUnavailable, NotFound
from agromarket.core.idempotency import IDEMPOTENCY_HEADER, normalize_idempotency_key
from agromarket.core.session import SessionContext

logger = logging.getLogger(__name__)


def error_message(payload: Any, fallback: str) -> str:
    """Pull the provider/backend message out of an error body."""
    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        nested = payload.get("data")
        if isinstance(nested, dict):
            return error_message(nested, fallback)
    if isinstance(payload, str) and payload.strip() and len(payload) < 300:
        return payload.strip()
    return fallback


class MarketplaceApi:
    """Thin async client for the marketplace REST resources."""

    def __init__(
        self,
        context: SessionContext,
        base_url: str = "http://localhost:3000/api",
        prefix: str = "/agro",
        timeout: float = 15.0,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.context = context
        self._base_url = base_url.rstrip("/")
        self._prefix = "/" + prefix.strip("/") if prefix and prefix.strip("/") else ""
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = http_session
        self._owns_session = http_session is None

    @classmethod
    def from_config(cls, context: SessionContext, config: ApiConfig) -> MarketplaceApi:
        return cls(context, base_url=config.base_url, prefix=config.prefix, timeout=config.timeout)

    async def __aenter__(self) -> MarketplaceApi:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    def url(self, path: str) -> str:
        return f"{self._base_url}{self._prefix}/{path.lstrip('/')}"

    @staticmethod
    async def _read_body(resp: aiohttp.ClientResponse) -> Any:
        raw = await resp.text()
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        request_headers = {"Accept": "application/json", **self.context.auth_headers()}
        if headers:
            request_headers.update(headers)
        if params:
            params = {k: v for k, v in params.items() if v is not None and v != ""}

        url = self.url(path)
        session = await self._get_session()
        try:
            async with session.request(
                method,
                url,
                json=json_body,
                params=params or None,
                headers=request_headers,
                timeout=self._timeout,
            ) as resp:
                body = await self._read_body(resp)
                if resp.status == 404:
                    raise NotFound(error_message(body, f"{method} {path}: not found"))
                if resp.status >= 400:
                    message = error_message(body, f"{method} {path} failed with HTTP {resp.status}")
                    logger.warning("Backend error %s on %s %s: %s", resp.status, method, path, message)
                    raise BackendError(resp.status, message, body)
                return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Backend unreachable on %s %s: %s", method, path, exc)
            raise BackendUnavailable(f"{method} {path}: {exc or type(exc).__name__}") from exc

    # Cart -----------------------------------------------------------------

    async def get_cart(self) -> Any:
        return await self._request("GET", "/cart")

    async def add_to_cart(self, product_id: int, qty: int = 1) -> Any:
        return await self._request("POST", "/cart/add", json_body={"product_id": product_id, "qty": qty})

    async def update_cart_item(self, item_id: int, qty: int) -> Any:
        return await self._request("PUT", f"/cart/{item_id}", json_body={"qty": qty})

    async def remove_from_cart(self, item_id: int) -> Any:
        return await self._request("DELETE", f"/cart/{item_id}")

    async def clear_cart(self) -> Any:
        return await self._request("DELETE", "/cart")

    # Buyer orders ---------------------------------------------------------

    async def get_orders(self) -> Any:
        return await self._request("GET", "/orders")

    async def get_order(self, order_id: int) -> Any:
        return await self._request("GET", f"/orders/{order_id}")

    async def checkout(self, phone: str, provider_id: int | None = None) -> Any:
        body: dict[str, Any] = {"phone": phone}
        if provider_id is not None:
            body["provider_id"] = provider_id
        return await self._request("POST", "/orders/checkout", json_body=body)

    # Paystack -------------------------------------------------------------

    async def initialize_paystack(
        self, amount: int, email: str, provider_id: int | None = None
    ) -> Any:
        body: dict[str, Any] = {"amount": amount, "email": email}
        if provider_id is not None:
            body["provider_id"] = provider_id
        return await self._request("POST", "/orders/paystack/initialize", json_body=body)

    async def verify_paystack(
        self,
        reference: str,
        provider_id: int | None = None,
        idempotency_key: str | None = None,
    ) -> Any:
        body: dict[str, Any] = {"reference": reference}
        if provider_id is not None:
            body["provider_id"] = provider_id
        headers = None
        key = normalize_idempotency_key(idempotency_key)
        if key:
            headers = {IDEMPOTENCY_HEADER: key}
        return await self._request(
            "POST", "/orders/paystack/verify", json_body=body, headers=headers
        )

    async def reinitialize_paystack(self, order_id: int) -> Any:
        return await self._request(
            "POST", "/orders/paystack/reinitialize", json_body={"order_id": order_id}
        )

    # Seller orders --------------------------------------------------------

    async def get_seller_orders(self) -> Any:
        return await self._request("GET", "/orders/seller")

    async def get_seller_order(self, order_id: int) -> Any:
        return await self._request("GET", f"/orders/seller/{order_id}")

    async def update_seller_order_status(self, order_id: int, status: str) -> Any:
        return await self._request(
            "PATCH", f"/orders/seller/{order_id}/status", json_body={"status": status}
        )

    # Catalog --------------------------------------------------------------

    async def get_products(
        self,
        provider_id: int | None = None,
        category: str | None = None,
        search: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> Any:
        params = {
            "provider_id": provider_id,
            "category": category,
            "search": search,
            "page": page,
            "limit": limit,
        }
        return await self._request("GET", "/products", params=params)
