"""Catalog listing for the marketplace."""
from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from agromarket.core.exceptions import ValidationError
from agromarket.core.sanitize import parse_int
from agromarket.domain.catalog import Product, ProductPage
from agromarket.integrations.marketplace_api import MarketplaceApi

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 12


class CatalogService:
    """Stateless product listing, optionally scoped to one vendor."""

    def __init__(self, api: MarketplaceApi) -> None:
        self.api = api

    async def list_products(
        self,
        vendor_id: int | None = None,
        category: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ProductPage:
        if page < 1 or limit < 1:
            raise ValidationError(f"Invalid page {page} / limit {limit}")

        payload = await self.api.get_products(
            provider_id=vendor_id,
            category=category if category and category != "all" else None,
            search=(search or "").strip() or None,
            page=page,
            limit=limit,
        )
        return self._parse_page(payload, page, limit)

    @staticmethod
    def _parse_page(payload: Any, page: int, limit: int) -> ProductPage:
        if isinstance(payload, list):
            rows, total = payload, len(payload)
        elif isinstance(payload, dict):
            rows = payload.get("data") or payload.get("products") or []
            total = parse_int(payload.get("total"), len(rows))
        else:
            rows, total = [], 0

        items = []
        for raw in rows:
            if not isinstance(raw, dict):
                continue
            try:
                items.append(Product.from_dict(raw))
            except PydanticValidationError as e:
                logger.warning(
                    "Skipping malformed product %r: %s error(s)", raw.get("id"), e.error_count()
                )
        try:
            return ProductPage(items=items, total=max(total, 0), page=page, limit=limit)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid product page: {e.error_count()} error(s)") from e
