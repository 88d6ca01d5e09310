# pennyekart/services/order_service.py
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from pennyekart.models import Order, as_utc

_WORD_START = re.compile(r"\b\w")


def format_status_label(status: Optional[str]) -> str:
    """'out_for_delivery' -> 'Out For Delivery'"""
    text = (status or "").replace("_", " ")
    return _WORD_START.sub(lambda match: match.group(0).upper(), text)


def _amount(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _build_item(item: Dict[str, Any]) -> Dict[str, Any]:
    price = _amount(item.get("price"))
    mrp = _amount(item.get("mrp"))
    try:
        quantity = int(item.get("quantity") or 0) or 1
    except (TypeError, ValueError):
        quantity = 1
    item_id = item.get("id")
    return {
        "id": item_id,
        "name": item.get("name") or (str(item_id)[:8] if item_id else "Unknown"),
        "quantity": quantity,
        "price": float(price) if price is not None else None,
        "mrp": float(mrp) if mrp is not None else None,
        "show_mrp": mrp is not None and mrp != price,
        "image_url": item.get("image_url"),
        "line_total": float((price or Decimal("0")) * quantity),
    }


def build_order_detail(order: Order) -> Dict[str, Any]:
    raw_items = order.items if isinstance(order.items, list) else []
    items: List[Dict[str, Any]] = [_build_item(item) for item in raw_items if isinstance(item, dict)]
    created_at = as_utc(order.created_at)
    return {
        "id": order.orderID,
        "short_id": order.orderID[:8],
        "status": order.status,
        "status_label": format_status_label(order.status),
        "is_delivered": order.status == "delivered",
        "created_at": created_at.isoformat() if created_at else None,
        "shipping_address": order.shipping_address,
        "items": items,
        "item_count": len(items),
        "total": float(order.total or 0),
    }


class OrderService:
    """Read-side order views for customers"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_order_detail(self, order_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        query = self.db.query(Order).filter(Order.orderID == str(order_id))
        if user_id is not None:
            query = query.filter(Order.userID == str(user_id))
        order = query.first()
        if order is None:
            return None
        return build_order_detail(order)
