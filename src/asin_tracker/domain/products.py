"""Product, seller status, and selection models."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import StrEnum

ASIN_PATTERN = re.compile(r"^[A-Z0-9]{10}$")

AMAZON_PRODUCT_URL_TEMPLATE = "https://www.amazon.com/dp/{asin}?psc=1"


def normalize_asin(raw: str | None) -> str | None:
    """Return an upper-cased ASIN, or None when it is not well formed."""

    if raw is None:
        return None
    candidate = raw.strip().upper()
    if not ASIN_PATTERN.match(candidate):
        return None
    return candidate


def amazon_url_for(asin: str) -> str:
    """Return the canonical product page URL for an ASIN."""

    return AMAZON_PRODUCT_URL_TEMPLATE.format(asin=asin)


class SellerStatusValue(StrEnum):
    """Eligibility classification derived from the marketplace lookup."""

    ALLOWED = "allowed"
    GATED = "gated"
    REQUIRES_INVOICE = "requires_invoice"
    RESTRICTED = "restricted"
    UNKNOWN = "unknown"


class ProcessingMode(StrEnum):
    """Selection modes for eligibility processing runs."""

    UNCHECKED = "unchecked"
    GATED = "gated"
    RECENT_100 = "100"
    RECENT_200 = "200"

    @property
    def recent_limit(self) -> int | None:
        """Return N for the "most recent N" modes."""

        if self is ProcessingMode.RECENT_100:
            return 100
        if self is ProcessingMode.RECENT_200:
            return 200
        return None


@dataclass(slots=True)
class ProductRecord:
    """Product attributes imported from Keepa exports.

    Every attribute except `asin` may be None, meaning "unknown" rather than
    "cleared"; upserts never overwrite a stored value with None.
    """

    asin: str
    sales_rank_current: int | None = None
    sales_rank_avg_90d: int | None = None
    sales_rank_drop_90d: float | None = None
    bought_past_month: int | None = None
    rating: float | None = None
    rating_count: int | None = None
    rating_count_drop_90d: float | None = None
    buybox_price: float | None = None
    buybox_price_avg_90d: float | None = None
    buybox_price_drop_90d: float | None = None
    buybox_price_lowest: float | None = None
    buybox_price_highest: float | None = None
    buybox_stock: int | None = None
    amazon_share_180d: float | None = None
    buybox_winner_count_90d: int | None = None
    referral_fee: float | None = None
    offer_count_total: int | None = None
    new_offer_count_current: int | None = None
    new_offer_count_avg_90d: int | None = None
    category_root: str | None = None
    category_sub: str | None = None
    category_tree: str | None = None
    brand: str | None = None
    release_date: str | None = None
    package_dimension_cm3: float | None = None
    package_weight_g: float | None = None
    package_quantity: int | None = None
    is_hazmat: bool | None = None
    is_heat_sensitive: bool | None = None
    amazon_url: str | None = None
    image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def attribute_values(self) -> dict[str, object]:
        """Return importable attributes, excluding identity and timestamps."""

        return {
            name: getattr(self, name)
            for name in PRODUCT_ATTRIBUTE_FIELDS
        }


PRODUCT_ATTRIBUTE_FIELDS: tuple[str, ...] = tuple(
    item.name
    for item in fields(ProductRecord)
    if item.name not in {"asin", "created_at", "updated_at"}
)


@dataclass(slots=True, frozen=True)
class SellerStatusRecord:
    """Latest eligibility classification for one ASIN."""

    asin: str
    status: SellerStatusValue
    checked_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class Tag:
    """Classification tag attached to products."""

    id: int
    name: str
    kind: str


@dataclass(slots=True, frozen=True)
class ProductFilter:
    """Listing criteria for product queries."""

    search: str | None = None
    brand: str | None = None
    checked: bool | None = None
    sort_by: str = "created_at"
    sort_desc: bool = True
    page: int = 1
    limit: int = 50


@dataclass(slots=True, frozen=True)
class ProductPage:
    """One page of products plus the unpaginated match count."""

    items: list[ProductRecord] = field(default_factory=list)
    total: int = 0


__all__ = [
    "AMAZON_PRODUCT_URL_TEMPLATE",
    "ASIN_PATTERN",
    "PRODUCT_ATTRIBUTE_FIELDS",
    "ProcessingMode",
    "ProductFilter",
    "ProductPage",
    "ProductRecord",
    "SellerStatusRecord",
    "SellerStatusValue",
    "Tag",
    "amazon_url_for",
    "normalize_asin",
]
