"""
Flash sale lifecycle rules.

Pure helpers shared by the customer banner, the sale detail page and the
admin manager: campaign status, countdown decomposition, discount badges and
the product reference carried by each line item. Nothing here touches the
database, so status and countdown must be recomputed on every read.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from pennyekart.config import Config
from pennyekart.models import CampaignStatus, DiscountType, ProductSource, as_utc


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Normalise a form or JSON timestamp to an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (``Z`` suffix included) and the
    ``YYYY-MM-DDTHH:MM`` shape sent by datetime-local inputs. Naive values are
    taken as UTC. Returns None for blank input and raises ValueError for
    anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def resolve_campaign_status(
    is_active: bool,
    start: datetime,
    end: datetime,
    now: Optional[datetime] = None,
) -> CampaignStatus:
    now = as_utc(now) if now else utcnow()
    if not is_active:
        return CampaignStatus.INACTIVE
    if now < as_utc(start):
        return CampaignStatus.SCHEDULED
    if now <= as_utc(end):
        return CampaignStatus.LIVE
    return CampaignStatus.ENDED


def status_of(flash_sale, now: Optional[datetime] = None) -> CampaignStatus:
    return resolve_campaign_status(
        bool(flash_sale.is_active), flash_sale.start_time, flash_sale.end_time, now
    )


@dataclass(frozen=True)
class Countdown:
    hours: int
    minutes: int
    seconds: int

    @property
    def total_seconds(self) -> int:
        return self.hours * 3600 + self.minutes * 60 + self.seconds

    @property
    def expired(self) -> bool:
        return self.total_seconds == 0

    def display(self) -> str:
        return f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}"

    def to_dict(self) -> dict:
        return {
            "hours": self.hours,
            "minutes": self.minutes,
            "seconds": self.seconds,
            "display": self.display(),
            "expired": self.expired,
        }


def compute_countdown(end: datetime, now: Optional[datetime] = None) -> Countdown:
    now = as_utc(now) if now else utcnow()
    remaining = max(0, int((as_utc(end) - now).total_seconds()))
    return Countdown(
        hours=remaining // 3600,
        minutes=(remaining % 3600) // 60,
        seconds=remaining % 60,
    )


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def format_amount(value: Any) -> str:
    """Render 10, 10.0 and Decimal('10.00') as '10'; keep real fractions."""
    amount = _to_decimal(value)
    if amount is None:
        return ""
    if amount == amount.to_integral_value():
        return str(int(amount))
    return format(amount.normalize(), "f")


def discount_percent(price: Any, reference_price: Any) -> Optional[int]:
    """Percentage off the reference ("was") price, or None when there is no markdown."""
    price_d = _to_decimal(price)
    ref_d = _to_decimal(reference_price)
    if price_d is None or ref_d is None or ref_d <= 0 or ref_d <= price_d:
        return None
    percent = (ref_d - price_d) / ref_d * 100
    return int(percent.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def campaign_discount_label(
    kind: Any,
    magnitude: Any,
    currency_symbol: Optional[str] = None,
) -> Optional[str]:
    # Independent of the per-item price badges; the two are never reconciled.
    amount = _to_decimal(magnitude)
    if amount is None or amount <= 0 or kind is None:
        return None
    try:
        kind = DiscountType(kind)
    except ValueError:
        return None
    if kind is DiscountType.PERCENTAGE:
        return f"{format_amount(amount)}% OFF"
    symbol = Config.CURRENCY_SYMBOL if currency_symbol is None else currency_symbol
    return f"{symbol}{format_amount(amount)} OFF"


@dataclass(frozen=True)
class ProductRef:
    """A line item's product: exactly one catalog, identified by its tag."""

    source: ProductSource
    product_id: str

    def __post_init__(self) -> None:
        if not isinstance(self.source, ProductSource):
            object.__setattr__(self, "source", ProductSource(self.source))
        if not self.product_id or not str(self.product_id).strip():
            raise ValueError("Product reference requires a product id")

    @classmethod
    def from_columns(
        cls,
        product_id: Optional[str],
        seller_product_id: Optional[str],
    ) -> "ProductRef":
        has_product = bool(product_id)
        has_seller_product = bool(seller_product_id)
        if has_product and has_seller_product:
            raise ValueError("Select either a catalog product or a seller product, not both")
        if not has_product and not has_seller_product:
            raise ValueError("A catalog product or a seller product is required")
        if has_product:
            return cls(ProductSource.PRODUCT, str(product_id))
        return cls(ProductSource.SELLER_PRODUCT, str(seller_product_id))

    def as_columns(self) -> dict:
        return {
            "productID": self.product_id if self.source is ProductSource.PRODUCT else None,
            "sellerProductID": self.product_id if self.source is ProductSource.SELLER_PRODUCT else None,
        }


def next_boundary(flash_sales: Iterable[Any], now: Optional[datetime] = None) -> Optional[datetime]:
    """Nearest future start or end among active campaigns."""
    now = as_utc(now) if now else utcnow()
    upcoming = []
    for sale in flash_sales:
        if not sale.is_active:
            continue
        for instant in (sale.start_time, sale.end_time):
            if instant is not None and as_utc(instant) > now:
                upcoming.append(as_utc(instant))
    return min(upcoming) if upcoming else None
