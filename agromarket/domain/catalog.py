"""Catalog product types."""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class Product(BaseModel):
    """Product listing row as served by the marketplace backend."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(..., description="Product ID")
    name: str = Field("", description="Display name")
    price: Decimal = Field(..., ge=0, description="Unit price in major currency units")
    available_stock: int = Field(
        0,
        ge=0,
        validation_alias=AliasChoices("available_stock", "quantity", "stock"),
        description="Units currently on hand",
    )
    vendor_id: int | None = Field(
        None,
        validation_alias=AliasChoices("vendor_id", "provider_id"),
        description="Owning agrovet",
    )
    vendor_name: str = Field(
        "",
        validation_alias=AliasChoices("vendor_name", "shop_name"),
        description="Shop name",
    )
    category: str | None = Field(None, description="Catalog category")
    image_ref: str | None = Field(
        None,
        validation_alias=AliasChoices("image_ref", "image_url"),
        description="Image path or URL",
    )
    company: str | None = None
    description: str | None = None

    @field_validator("name", "vendor_name", mode="before")
    @classmethod
    def blank_text(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("available_stock", mode="before")
    @classmethod
    def missing_stock(cls, v: Any) -> Any:
        return 0 if v is None or v == "" else v

    @field_validator("vendor_id", mode="before")
    @classmethod
    def blank_vendor(cls, v: Any) -> Any:
        return None if v == "" else v

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Product:
        """Validate a backend row; raises pydantic.ValidationError."""
        return cls.model_validate(data)


class ProductPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[Product] = Field(default_factory=list)
    total: int = Field(0, ge=0)
    page: int = Field(1, ge=1)
    limit: int = Field(12, ge=1)

    @property
    def pages(self) -> int:
        return max(1, -(-self.total // self.limit))

    @property
    def has_more(self) -> bool:
        return self.page < self.pages
