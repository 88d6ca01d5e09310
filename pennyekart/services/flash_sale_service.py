# pennyekart/services/flash_sale_service.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple

import bleach
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pennyekart.config import Config
from pennyekart.models import (
    CampaignStatus,
    DiscountType,
    FlashSale,
    FlashSaleProduct,
    Product,
    ProductSource,
    SellerProduct,
    as_utc,
)
from pennyekart.observability import increment_counter, record_event, timed
from pennyekart.services.flash_sale_lifecycle import (
    ProductRef,
    campaign_discount_label,
    compute_countdown,
    discount_percent,
    parse_timestamp,
    status_of,
    utcnow,
)

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")
REQUIRED_FIELDS_MESSAGE = "Fill all required fields"


@dataclass(frozen=True)
class EnrichedLineItem:
    """A line item joined with its product's display data."""

    line_item_id: str
    flash_sale_id: str
    price: Decimal
    reference_price: Decimal
    sort_order: int
    source: Optional[ProductSource]
    product_id: Optional[str]
    display_name: Optional[str] = None
    display_image: Optional[str] = None
    description: Optional[str] = None
    placeholder: bool = False

    @property
    def discount_percent(self) -> Optional[int]:
        return discount_percent(self.price, self.reference_price)

    @property
    def shows_reference_price(self) -> bool:
        return self.reference_price > self.price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.line_item_id,
            "flash_sale_id": self.flash_sale_id,
            "price": float(self.price),
            "reference_price": float(self.reference_price),
            "show_reference_price": self.shows_reference_price,
            "discount_percent": self.discount_percent,
            "sort_order": self.sort_order,
            "product_id": self.product_id,
            "source": self.source.value if self.source else None,
            "source_label": self.source.label if self.source else None,
            "name": self.display_name,
            "image_url": self.display_image,
            "description": self.description,
            "placeholder": self.placeholder,
        }

    def to_cart_item(self) -> Dict[str, Any]:
        """Payload for the cart: the product at its flash price."""
        return {
            "id": self.product_id,
            "name": self.display_name or "Product",
            "price": float(self.price),
            "mrp": float(self.reference_price),
            "image": self.display_image or "",
            "source": self.source.value if self.source else None,
        }


class FlashSaleService:
    """Service class for the flash sale lifecycle: live windows, line items and admin edits"""

    def __init__(self, db_session: Session):
        self.db = db_session

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_flash_sale_by_id(self, flash_sale_id: str) -> Optional[FlashSale]:
        """Get flash sale by ID"""
        if not flash_sale_id:
            return None
        return self.db.query(FlashSale).filter_by(flashSaleID=str(flash_sale_id)).first()

    def get_active_flash_sales(self, now: Optional[datetime] = None) -> List[FlashSale]:
        """Campaigns switched on whose window contains `now`, earliest start first."""
        now = as_utc(now) if now else utcnow()
        return (
            self.db.query(FlashSale)
            .filter(
                FlashSale.is_active.is_(True),
                FlashSale._start_time <= now,
                FlashSale._end_time >= now,
            )
            .order_by(FlashSale._start_time.asc())
            .all()
        )

    def get_unfinished_flash_sales(self, now: Optional[datetime] = None) -> List[FlashSale]:
        """Active campaigns that are live or still to start."""
        now = as_utc(now) if now else utcnow()
        return (
            self.db.query(FlashSale)
            .filter(FlashSale.is_active.is_(True), FlashSale._end_time >= now)
            .order_by(FlashSale._start_time.asc())
            .all()
        )

    def get_line_item_counts(self, flash_sale_ids: Iterable[str]) -> Dict[str, int]:
        ids = [str(sale_id) for sale_id in flash_sale_ids]
        if not ids:
            return {}
        rows = (
            self.db.query(FlashSaleProduct.flashSaleID, func.count(FlashSaleProduct.flashSaleProductID))
            .filter(FlashSaleProduct.flashSaleID.in_(ids))
            .group_by(FlashSaleProduct.flashSaleID)
            .all()
        )
        return {sale_id: int(count) for sale_id, count in rows}

    def get_visible_flash_sales(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Banner set for customers.

        A live window is not enough: campaigns without any enrolled product are
        left out even though they match the time filter.
        """
        now = as_utc(now) if now else utcnow()
        active = self.get_active_flash_sales(now)
        counts = self.get_line_item_counts(sale.flashSaleID for sale in active)

        visible = []
        for sale in active:
            product_count = counts.get(sale.flashSaleID, 0)
            if product_count == 0:
                continue
            payload = sale.to_dict()
            payload.update(
                status=CampaignStatus.LIVE.value,
                product_count=product_count,
                countdown=compute_countdown(sale.end_time, now).to_dict(),
                discount_label=campaign_discount_label(sale.discount_type, sale.discount_value),
            )
            visible.append(payload)
        return visible

    def get_line_items(self, flash_sale_id: str) -> List[FlashSaleProduct]:
        return (
            self.db.query(FlashSaleProduct)
            .filter_by(flashSaleID=str(flash_sale_id))
            .order_by(FlashSaleProduct.sort_order.asc(), FlashSaleProduct.created_at.asc())
            .all()
        )

    def get_line_item(self, line_item_id: str) -> Optional[FlashSaleProduct]:
        return self.db.query(FlashSaleProduct).filter_by(flashSaleProductID=str(line_item_id)).first()

    def aggregate_line_items(self, flash_sale_id: str) -> List[EnrichedLineItem]:
        """
        Resolve every line item of a campaign against its product catalog.

        Items keep their sort order. A product that was deleted, deactivated or
        failed to load turns into a placeholder entry instead of failing the
        whole list.
        """
        with timed("record_store_latency_ms", labels={"operation": "aggregate_line_items"}):
            items = self.get_line_items(flash_sale_id)
            return [self._enrich(item) for item in items]

    def _enrich(self, item: FlashSaleProduct) -> EnrichedLineItem:
        # Snapshot the row first: a rollback below would expire it
        base = {
            "line_item_id": item.flashSaleProductID,
            "flash_sale_id": item.flashSaleID,
            "price": Decimal(str(item.flash_price)),
            "reference_price": Decimal(str(item.flash_mrp)),
            "sort_order": item.sort_order or 0,
        }
        try:
            ref = ProductRef.from_columns(item.productID, item.sellerProductID)
        except ValueError as exc:
            logger.warning("Line item %s has no usable product reference: %s", base["line_item_id"], exc)
            increment_counter("flash_sale_lookup_misses_total", labels={"reason": "bad_reference"})
            return EnrichedLineItem(source=None, product_id=None, placeholder=True, **base)

        try:
            details = self._resolve_product(ref)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning(
                "Product lookup failed for line item %s (%s %s): %s",
                base["line_item_id"],
                ref.source.value,
                ref.product_id,
                exc,
            )
            details = None

        if details is None:
            increment_counter("flash_sale_lookup_misses_total", labels={"source": ref.source.value})
            return EnrichedLineItem(source=ref.source, product_id=ref.product_id, placeholder=True, **base)

        return EnrichedLineItem(
            source=ref.source,
            product_id=ref.product_id,
            display_name=details["name"],
            display_image=details["image_url"],
            description=details["description"],
            **base,
        )

    def _load_source_row(self, ref: ProductRef):
        if ref.source is ProductSource.PRODUCT:
            return self.db.query(Product).filter_by(productID=ref.product_id).first()
        return self.db.query(SellerProduct).filter_by(sellerProductID=ref.product_id).first()

    def _resolve_product(self, ref: ProductRef) -> Optional[Dict[str, Any]]:
        row = self._load_source_row(ref)
        if row is None or not row.is_active:
            return None
        return {"name": row.name, "image_url": row.image_url, "description": row.description}

    def get_flash_sale_detail(self, flash_sale_id: str, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """Customer sale page: only live campaigns with enrolled products."""
        now = as_utc(now) if now else utcnow()
        sale = self.get_flash_sale_by_id(flash_sale_id)
        if not sale or status_of(sale, now) is not CampaignStatus.LIVE:
            return None
        if not self.get_line_item_counts([sale.flashSaleID]):
            return None

        products = [item for item in self.aggregate_line_items(sale.flashSaleID) if not item.placeholder]
        payload = sale.to_dict()
        payload.update(
            status=CampaignStatus.LIVE.value,
            discount_label=campaign_discount_label(sale.discount_type, sale.discount_value),
            countdown=compute_countdown(sale.end_time, now).to_dict(),
            products=[item.to_dict() for item in products],
        )
        return payload

    def get_countdown(self, flash_sale_id: str, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        now = as_utc(now) if now else utcnow()
        sale = self.get_flash_sale_by_id(flash_sale_id)
        if not sale:
            return None
        return {
            "id": sale.flashSaleID,
            "status": status_of(sale, now).value,
            "countdown": compute_countdown(sale.end_time, now).to_dict(),
        }

    def list_flash_sales_for_admin(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Every campaign, newest first, including ones with no products yet."""
        now = as_utc(now) if now else utcnow()
        sales = self.db.query(FlashSale).order_by(FlashSale.created_at.desc()).all()
        listing = []
        for sale in sales:
            items = self.aggregate_line_items(sale.flashSaleID)
            payload = sale.to_dict()
            payload.update(
                status=status_of(sale, now).value,
                product_count=len(items),
                discount_label=campaign_discount_label(sale.discount_type, sale.discount_value),
                items=[item.to_dict() for item in items],
            )
            listing.append(payload)
        return listing

    def get_product_options(self, search: Optional[str] = None) -> List[Dict[str, Any]]:
        """Products an admin may enrol: active catalog items, then approved seller items."""
        products = self.db.query(Product).filter(Product.is_active.is_(True)).order_by(Product.name).all()
        seller_products = (
            self.db.query(SellerProduct)
            .filter(SellerProduct.is_active.is_(True), SellerProduct.is_approved.is_(True))
            .order_by(SellerProduct.name)
            .all()
        )
        options = [
            self._product_option(p.productID, p, ProductSource.PRODUCT) for p in products
        ] + [
            self._product_option(p.sellerProductID, p, ProductSource.SELLER_PRODUCT) for p in seller_products
        ]
        needle = (search or "").strip().lower()
        if needle:
            options = [option for option in options if needle in option["name"].lower()]
        return options

    @staticmethod
    def _product_option(option_id: str, row, source: ProductSource) -> Dict[str, Any]:
        return {
            "id": option_id,
            "name": row.name,
            "price": float(row.price),
            "mrp": float(row.mrp),
            "image_url": row.image_url,
            "source": source.value,
        }

    # ------------------------------------------------------------------
    # Admin mutations
    # ------------------------------------------------------------------
    def _validate_campaign(
        self,
        title: Optional[str],
        start_time: Any,
        end_time: Any,
        description: Optional[str],
        banner_color: Optional[str],
        discount_type: Any,
        discount_value: Any,
    ) -> Tuple[bool, str, Dict[str, Any]]:
        clean_title = bleach.clean(title or "", tags=[], strip=True).strip()
        if not clean_title or not start_time or not end_time:
            return False, REQUIRED_FIELDS_MESSAGE, {}
        if len(clean_title) > Config.FLASH_SALE_TITLE_MAX_LENGTH:
            return False, f"Title must be at most {Config.FLASH_SALE_TITLE_MAX_LENGTH} characters", {}

        try:
            start = parse_timestamp(start_time)
            end = parse_timestamp(end_time)
        except (TypeError, ValueError):
            return False, "Start and end must be valid date-times", {}
        if start is None or end is None:
            return False, REQUIRED_FIELDS_MESSAGE, {}
        if start >= end:
            return False, "Start time must be before end time", {}

        color = (banner_color or "").strip() or Config.DEFAULT_BANNER_COLOR
        if not _HEX_COLOR.match(color):
            return False, "Banner color must be a hex color such as #ef4444", {}

        cleaned: Dict[str, Any] = {
            "title": clean_title,
            "description": bleach.clean(description or "", tags=[], strip=True).strip() or None,
            "banner_color": color,
            "start_time": start,
            "end_time": end,
        }

        if discount_type is not None:
            try:
                cleaned["discount_type"] = DiscountType(discount_type)
            except ValueError:
                return False, "Discount type must be 'percentage' or 'flat'", {}
        if discount_value is not None and discount_value != "":
            try:
                value = Decimal(str(discount_value))
            except (InvalidOperation, ValueError):
                return False, "Discount value must be a number", {}
            if value < 0:
                return False, "Discount value cannot be negative", {}
            cleaned["discount_value"] = value

        range_error = self._discount_range_error(cleaned.get("discount_type"), cleaned.get("discount_value"))
        if range_error:
            return False, range_error, {}
        return True, "", cleaned

    @staticmethod
    def _discount_range_error(discount_type: Any, discount_value: Optional[Decimal]) -> Optional[str]:
        if discount_value is None or discount_type is None:
            return None
        if DiscountType(discount_type) is DiscountType.PERCENTAGE and discount_value > 100:
            return "Discount must be between 0 and 100 percent"
        return None

    def create_flash_sale(
        self,
        title: Optional[str],
        start_time: Any,
        end_time: Any,
        description: Optional[str] = None,
        banner_color: Optional[str] = None,
        discount_type: Any = DiscountType.PERCENTAGE,
        discount_value: Any = 0,
    ) -> Tuple[bool, str, Optional[FlashSale]]:
        """Create a new flash sale"""
        valid, message, fields = self._validate_campaign(
            title, start_time, end_time, description, banner_color, discount_type, discount_value
        )
        if not valid:
            return False, message, None

        try:
            flash_sale = FlashSale(is_active=True, **fields)
            self.db.add(flash_sale)
            self.db.commit()
            self.db.refresh(flash_sale)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating flash sale: {e}")
            return False, f"Error creating flash sale: {e}", None

        increment_counter("flash_sales_created_total")
        record_event("flash_sale_created", {"flash_sale_id": flash_sale.flashSaleID, "title": flash_sale.title})
        logger.info("Created flash sale %s", flash_sale.flashSaleID, extra={"flash_sale_id": flash_sale.flashSaleID})
        return True, "Flash Sale created!", flash_sale

    def update_flash_sale(
        self,
        flash_sale_id: str,
        title: Optional[str],
        start_time: Any,
        end_time: Any,
        description: Optional[str] = None,
        banner_color: Optional[str] = None,
        discount_type: Any = None,
        discount_value: Any = None,
    ) -> Tuple[bool, str, Optional[FlashSale]]:
        """
        Edit a campaign; concurrent edits are last-write-wins.

        Title and window are always replaced. Description, banner color and
        the discount keep their stored values when passed as None; an empty
        string clears the description and resets the color to the default.
        """
        valid, message, fields = self._validate_campaign(
            title, start_time, end_time, description, banner_color, discount_type, discount_value
        )
        if not valid:
            return False, message, None

        flash_sale = self.get_flash_sale_by_id(flash_sale_id)
        if not flash_sale:
            return False, "Flash sale not found", None

        if "discount_type" not in fields:
            range_error = self._discount_range_error(flash_sale.discount_type, fields.get("discount_value"))
            if range_error:
                return False, range_error, None
        if description is None:
            fields.pop("description")
        if banner_color is None:
            fields.pop("banner_color")

        try:
            for name, value in fields.items():
                setattr(flash_sale, name, value)
            self.db.commit()
            self.db.refresh(flash_sale)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating flash sale {flash_sale_id}: {e}")
            return False, f"Error updating flash sale: {e}", None

        logger.info("Updated flash sale %s", flash_sale_id, extra={"flash_sale_id": flash_sale_id})
        return True, "Flash Sale updated!", flash_sale

    def toggle_flash_sale(self, flash_sale_id: str) -> Tuple[bool, str, Optional[FlashSale]]:
        flash_sale = self.get_flash_sale_by_id(flash_sale_id)
        if not flash_sale:
            return False, "Flash sale not found", None
        try:
            flash_sale.is_active = not flash_sale.is_active
            self.db.commit()
            self.db.refresh(flash_sale)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error toggling flash sale {flash_sale_id}: {e}")
            return False, f"Error toggling flash sale: {e}", None

        state = "activated" if flash_sale.is_active else "deactivated"
        record_event("flash_sale_toggled", {"flash_sale_id": flash_sale_id, "is_active": flash_sale.is_active})
        return True, f"Flash Sale {state}", flash_sale

    def delete_flash_sale(self, flash_sale_id: str) -> Tuple[bool, str, int]:
        """
        Delete a campaign and its line items.

        The schema has no ON DELETE CASCADE, so line items go first and the
        campaign second, inside one transaction. Returns the number of line
        items removed.
        """
        flash_sale = self.get_flash_sale_by_id(flash_sale_id)
        if not flash_sale:
            return False, "Flash sale not found", 0

        sale_id = flash_sale.flashSaleID
        try:
            removed = (
                self.db.query(FlashSaleProduct)
                .filter(FlashSaleProduct.flashSaleID == sale_id)
                .delete(synchronize_session=False)
            )
            self.db.query(FlashSale).filter(FlashSale.flashSaleID == sale_id).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting flash sale {sale_id}: {e}")
            return False, f"Error deleting flash sale: {e}", 0

        increment_counter("flash_sales_deleted_total")
        logger.info(
            "Deleted flash sale %s with %d line items", sale_id, removed, extra={"flash_sale_id": sale_id}
        )
        return True, "Flash Sale deleted", removed

    def add_line_item(
        self,
        flash_sale_id: str,
        product_id: Optional[str] = None,
        seller_product_id: Optional[str] = None,
        flash_price: Any = None,
        flash_mrp: Any = None,
    ) -> Tuple[bool, str, Optional[FlashSaleProduct]]:
        """Enrol one product; prices default to the product's own price and mrp."""
        try:
            ref = ProductRef.from_columns(product_id, seller_product_id)
        except ValueError as exc:
            return False, str(exc), None

        flash_sale = self.get_flash_sale_by_id(flash_sale_id)
        if not flash_sale:
            return False, "Flash sale not found", None

        source_row = self._load_source_row(ref)
        if source_row is None:
            return False, "Product not found", None

        try:
            price = Decimal(str(source_row.price if flash_price in (None, "") else flash_price))
            mrp = Decimal(str(source_row.mrp if flash_mrp in (None, "") else flash_mrp))
        except (InvalidOperation, ValueError):
            return False, "Flash price and MRP must be numbers", None
        if price < 0 or mrp < 0:
            return False, "Flash price and MRP cannot be negative", None

        last_position = (
            self.db.query(func.max(FlashSaleProduct.sort_order))
            .filter(FlashSaleProduct.flashSaleID == flash_sale.flashSaleID)
            .scalar()
        )
        item = FlashSaleProduct(
            flashSaleID=flash_sale.flashSaleID,
            flash_price=price,
            flash_mrp=mrp,
            sort_order=0 if last_position is None else last_position + 1,
            **ref.as_columns(),
        )
        try:
            self.db.add(item)
            self.db.commit()
            self.db.refresh(item)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error adding product to flash sale {flash_sale_id}: {e}")
            return False, f"Error adding product to flash sale: {e}", None

        increment_counter("flash_sale_line_items_added_total", labels={"source": ref.source.value})
        logger.info(
            "Added %s %s to flash sale %s",
            ref.source.value,
            ref.product_id,
            flash_sale.flashSaleID,
            extra={"flash_sale_id": flash_sale.flashSaleID, "line_item_id": item.flashSaleProductID},
        )
        return True, "Product added to flash sale", item

    def remove_line_item(self, line_item_id: str) -> Tuple[bool, str, List[EnrichedLineItem]]:
        """Remove one line item and return the owning campaign's refreshed list."""
        item = self.get_line_item(line_item_id)
        if not item:
            return False, "Line item not found", []

        flash_sale_id = item.flashSaleID
        try:
            self.db.delete(item)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error removing line item {line_item_id}: {e}")
            return False, f"Error removing product: {e}", []

        logger.info(
            "Removed line item %s", line_item_id,
            extra={"flash_sale_id": flash_sale_id, "line_item_id": line_item_id},
        )
        return True, "Removed", self.aggregate_line_items(flash_sale_id)
