"""Keepa CSV export parsing into product records and row errors."""

from __future__ import annotations

import csv
import io
import json
import logging
import re
import unicodedata
from dataclasses import dataclass

from asin_tracker.domain.imports import ImportRowError, ParseResult
from asin_tracker.domain.products import ProductRecord, normalize_asin

logger = logging.getLogger(__name__)

KEEPA_HEADER_FIELDS: dict[str, str] = {
    "ASIN": "asin",
    "Sales Rank: Current": "sales_rank_current",
    "Sales Rank: 90 days avg.": "sales_rank_avg_90d",
    "Sales Rank: 90 days drop %": "sales_rank_drop_90d",
    "Bought in past month": "bought_past_month",
    "Reviews: Rating": "rating",
    "Reviews: Rating Count": "rating_count",
    "Reviews: Rating Count - 90 days drop %": "rating_count_drop_90d",
    "Buy Box: Current": "buybox_price",
    "Buy Box: 90 days avg.": "buybox_price_avg_90d",
    "Buy Box: 90 days drop %": "buybox_price_drop_90d",
    "Buy Box: Lowest": "buybox_price_lowest",
    "Buy Box: Highest": "buybox_price_highest",
    "Buy Box: Stock": "buybox_stock",
    "Buy Box: % Amazon 180 days": "amazon_share_180d",
    "Buy Box: Winner Count 90 days": "buybox_winner_count_90d",
    "Referral Fee based on current Buy Box price": "referral_fee",
    "Total Offer Count": "offer_count_total",
    "New Offer Count: Current": "new_offer_count_current",
    "New Offer Count: 90 days avg.": "new_offer_count_avg_90d",
    "Categories: Root": "category_root",
    "Categories: Sub": "category_sub",
    "Categories: Tree": "category_tree",
    "Brand": "brand",
    "Release Date": "release_date",
    "Package: Dimension (cm³)": "package_dimension_cm3",
    "Package: Weight (g)": "package_weight_g",
    "Package: Quantity": "package_quantity",
    "Is HazMat": "is_hazmat",
    "Is heat sensitive": "is_heat_sensitive",
    "URL: Amazon": "amazon_url",
    "Image": "image_url",
}

INTEGER_FIELDS = frozenset(
    {
        "sales_rank_current",
        "sales_rank_avg_90d",
        "bought_past_month",
        "rating_count",
        "buybox_stock",
        "buybox_winner_count_90d",
        "offer_count_total",
        "new_offer_count_current",
        "new_offer_count_avg_90d",
        "package_quantity",
    }
)

DECIMAL_FIELDS = frozenset(
    {
        "sales_rank_drop_90d",
        "rating",
        "rating_count_drop_90d",
        "buybox_price",
        "buybox_price_avg_90d",
        "buybox_price_drop_90d",
        "buybox_price_lowest",
        "buybox_price_highest",
        "amazon_share_180d",
        "referral_fee",
        "package_dimension_cm3",
        "package_weight_g",
    }
)

BOOLEAN_FIELDS = frozenset({"is_hazmat", "is_heat_sensitive"})

MULTI_VALUE_FIELDS = frozenset({"image_url"})

SENTINEL_VALUES = frozenset({"", "n/a", "-"})

TRUTHY_TOKENS = frozenset({"yes", "true", "1"})

_DECORATIVE_CATEGORIES = frozenset({"So", "Sk", "Cf", "Co", "Cn"})
_HEADER_GROUP_ALIASES = (
    (re.compile(r"^buy\s*box price\b"), "buy box"),
    (re.compile(r"^buybox\b"), "buy box"),
)
_MULTI_VALUE_SPLIT = re.compile(r"[;,|]")
_NUMBER_NOISE = re.compile(r"[^0-9,.\-+]")
_LONE_COMMA_GROUPING = re.compile(r"^[-+]?\d{1,3},\d{3}$")


def normalize_header(raw: str) -> str:
    """Return a comparable header key.

    Decorative emoji, symbols, and zero-width characters are dropped,
    whitespace is collapsed, case is folded, and ``:`` is spaced uniformly.
    """

    text = unicodedata.normalize("NFKC", raw)
    text = "".join(
        char
        for char in text
        if unicodedata.category(char) not in _DECORATIVE_CATEGORIES
        and not 0xFE00 <= ord(char) <= 0xFE0F
    )
    text = re.sub(r"\s+", " ", text).strip().casefold()
    text = re.sub(r"\s*:\s*", ": ", text).strip()
    for pattern, replacement in _HEADER_GROUP_ALIASES:
        text = pattern.sub(replacement, text)
    return text


_NORMALIZED_HEADER_FIELDS = {
    normalize_header(header): field_name for header, field_name in KEEPA_HEADER_FIELDS.items()
}


def parse_number(raw: str) -> float | None:
    """Parse a locale-formatted number; the last of ``,``/``.`` is the decimal mark."""

    cleaned = _NUMBER_NOISE.sub("", raw)
    if not any(char.isdigit() for char in cleaned):
        return None

    last_comma = cleaned.rfind(",")
    last_dot = cleaned.rfind(".")
    if last_comma >= 0 and last_dot >= 0:
        decimal_mark = "," if last_comma > last_dot else "."
    elif last_comma >= 0:
        if cleaned.count(",") > 1 or _LONE_COMMA_GROUPING.match(cleaned):
            decimal_mark = None
        else:
            decimal_mark = ","
    elif last_dot >= 0:
        decimal_mark = "." if cleaned.count(".") == 1 else None
    else:
        decimal_mark = None

    if decimal_mark == ",":
        normalized = cleaned.replace(".", "").replace(",", ".")
    elif decimal_mark == ".":
        normalized = cleaned.replace(",", "")
    else:
        normalized = cleaned.replace(",", "").replace(".", "")

    try:
        return float(normalized)
    except ValueError:
        return None


@dataclass(slots=True, frozen=True)
class _ColumnBinding:
    column: str
    field_name: str


class KeepaCsvParser:
    """Header-driven parser for Keepa product exports."""

    def parse(self, content: bytes) -> ParseResult:
        """Parse raw CSV bytes. The first data row is reported as row 2."""

        text = content.decode("utf-8-sig", errors="replace")
        reader = csv.DictReader(io.StringIO(text))
        bindings = self._bind_columns(reader.fieldnames or [])
        asin_column = next(
            (binding.column for binding in bindings if binding.field_name == "asin"),
            None,
        )
        if asin_column is None:
            logger.warning("CSV header has no ASIN column: %s", reader.fieldnames)

        result = ParseResult()
        for row in reader:
            if self._is_blank(row):
                continue
            result.total_rows += 1
            row_number = result.total_rows + 1

            asin_value = (row.get(asin_column) or "") if asin_column else ""
            if not asin_value.strip():
                result.errors.append(
                    ImportRowError(row=row_number, reason="Missing ASIN", raw_data=self._raw(row))
                )
                continue
            asin = normalize_asin(asin_value)
            if asin is None:
                result.errors.append(
                    ImportRowError(
                        row=row_number,
                        reason=f"Invalid ASIN '{asin_value.strip()}'",
                        raw_data=self._raw(row),
                    )
                )
                continue

            record = ProductRecord(asin=asin)
            for binding in bindings:
                if binding.field_name == "asin":
                    continue
                setattr(
                    record,
                    binding.field_name,
                    self.coerce_value(binding.field_name, row.get(binding.column)),
                )
            result.valid.append(record)

        logger.info(
            "CSV parse: %s total rows, %s valid, %s errors.",
            result.total_rows,
            len(result.valid),
            len(result.errors),
        )
        return result

    def coerce_value(self, field_name: str, raw: str | None) -> object:
        """Convert one cell to the type declared for `field_name`."""

        if raw is None:
            return None
        value = raw.strip()
        if value.casefold() in SENTINEL_VALUES:
            return None
        if field_name in BOOLEAN_FIELDS:
            return value.casefold() in TRUTHY_TOKENS
        if field_name in INTEGER_FIELDS:
            number = parse_number(value)
            return None if number is None else int(round(number))
        if field_name in DECIMAL_FIELDS:
            return parse_number(value)
        if field_name in MULTI_VALUE_FIELDS:
            first = next(
                (part.strip() for part in _MULTI_VALUE_SPLIT.split(value) if part.strip()),
                None,
            )
            return first
        return value

    def _bind_columns(self, fieldnames: list[str]) -> list[_ColumnBinding]:
        bindings: list[_ColumnBinding] = []
        bound_fields: set[str] = set()
        for column in fieldnames:
            field_name = _NORMALIZED_HEADER_FIELDS.get(normalize_header(column))
            if field_name is None or field_name in bound_fields:
                continue
            bound_fields.add(field_name)
            bindings.append(_ColumnBinding(column=column, field_name=field_name))
        return bindings

    def _is_blank(self, row: dict[str | None, object]) -> bool:
        for key, value in row.items():
            if key is None:
                continue
            if isinstance(value, str) and value.strip():
                return False
        return True

    def _raw(self, row: dict[str | None, object]) -> str:
        return json.dumps(
            {key if key is not None else "_extra": value for key, value in row.items()},
            ensure_ascii=False,
        )


__all__ = [
    "KEEPA_HEADER_FIELDS",
    "KeepaCsvParser",
    "normalize_header",
    "parse_number",
]
