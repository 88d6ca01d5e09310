# pennyekart/services/purchase_service.py
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pennyekart.models import Godown, GodownStock, GodownType, Product
from pennyekart.observability import increment_counter

logger = logging.getLogger(__name__)


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_expiry(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    text = _blank_to_none(value)
    if text is None:
        return None
    return date.fromisoformat(text)


class PurchaseService:
    """Admin stock purchases into local godowns"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_local_godowns(self) -> List[Godown]:
        return (
            self.db.query(Godown)
            .filter(Godown.godown_type == GodownType.LOCAL, Godown.is_active.is_(True))
            .order_by(Godown.name.asc())
            .all()
        )

    def get_purchasable_products(self) -> List[Product]:
        return self.db.query(Product).filter(Product.is_active.is_(True)).order_by(Product.name.asc()).all()

    def _clean_items(self, items: Iterable[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        cleaned = []
        for index, item in enumerate(items or [], start=1):
            product_id = _blank_to_none(item.get("product_id"))
            try:
                quantity = int(item.get("quantity") or 0)
            except (TypeError, ValueError):
                return [], f"Row {index}: quantity must be a whole number"
            if not product_id or quantity <= 0:
                continue

            try:
                purchase_price = Decimal(str(item.get("purchase_price") or 0))
                expiry_date = _parse_expiry(item.get("expiry_date"))
            except (InvalidOperation, ValueError):
                return [], f"Row {index}: invalid purchase price or expiry date"
            if purchase_price < 0:
                return [], f"Row {index}: purchase price cannot be negative"

            cleaned.append(
                {
                    "productID": product_id,
                    "quantity": quantity,
                    "purchase_price": purchase_price,
                    "batch_number": _blank_to_none(item.get("batch_number")),
                    "expiry_date": expiry_date,
                }
            )
        return cleaned, None

    def record_purchase(
        self,
        godown_ids: Iterable[str],
        items: Iterable[Dict[str, Any]],
    ) -> Tuple[bool, str, int]:
        """
        Add every purchased item to every selected godown.

        Rows without a product or with a non-positive quantity are skipped.
        All rows are written in one commit; returns the inserted row count.
        """
        if godown_ids and (
            not isinstance(godown_ids, (list, tuple)) or not all(isinstance(godown_id, (str, int)) for godown_id in godown_ids)
        ):
            return False, "Godowns must be a list of ids", 0
        if items and (not isinstance(items, (list, tuple)) or not all(isinstance(item, dict) for item in items)):
            return False, "Items must be a list of products", 0

        selected = [str(godown_id) for godown_id in dict.fromkeys(godown_ids or []) if godown_id]
        if not selected:
            return False, "Select at least one godown", 0

        valid_items, error = self._clean_items(items)
        if error:
            return False, error, 0
        if not valid_items:
            return False, "Add at least one product with quantity", 0

        rows = [GodownStock(godownID=godown_id, **item) for godown_id in selected for item in valid_items]
        try:
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error recording stock purchase: {e}")
            return False, f"Error recording purchase: {e}", 0

        increment_counter("stock_purchase_rows_total", amount=len(rows))
        logger.info(
            "Recorded stock purchase",
            extra={"godown_count": len(selected), "row_count": len(rows)},
        )
        return (
            True,
            f"Stock added to {len(selected)} godown(s) - {len(valid_items)} product(s)",
            len(rows),
        )
