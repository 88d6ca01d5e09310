# pennyekart/services/catalog_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from pennyekart.models import GodownLocalBody, GodownStock, GodownWard, Product, Service

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_CATEGORY = "Other"


def product_to_dict(product: Product) -> Dict[str, Any]:
    return {
        "id": product.productID,
        "name": product.name,
        "price": float(product.price),
        "mrp": float(product.mrp),
        "discount_rate": float(product.discount_rate or 0),
        "image_url": product.image_url,
        "description": product.description,
        "category": product.category,
        "section": product.section,
        "stock": product.stock,
    }


class CatalogService:
    """Customer-facing catalog reads: services and ward-level product availability"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_services_grouped(self) -> List[Dict[str, Any]]:
        """Active services by category, keeping the admin's sort order."""
        services = (
            self.db.query(Service)
            .filter(Service.is_active.is_(True))
            .order_by(Service.sort_order.asc(), Service.name.asc())
            .all()
        )
        groups: Dict[str, List[Dict[str, Any]]] = {}
        for service in services:
            category = (service.category or "").strip() or DEFAULT_SERVICE_CATEGORY
            groups.setdefault(category, []).append(
                {
                    "id": service.serviceID,
                    "name": service.name,
                    "description": service.description,
                    "icon": service.icon,
                    "image_url": service.image_url,
                    "price": float(service.price or 0),
                }
            )
        return [{"category": category, "services": items} for category, items in groups.items()]

    def get_serving_godown_ids(self, local_body_id: str, ward_number: int) -> List[str]:
        """Micro godowns mapped to the ward plus area godowns mapped to the local body."""
        ward_rows = (
            self.db.query(GodownWard.godownID)
            .filter(GodownWard.local_body_id == local_body_id, GodownWard.ward_number == ward_number)
            .all()
        )
        local_body_rows = (
            self.db.query(GodownLocalBody.godownID)
            .filter(GodownLocalBody.local_body_id == local_body_id)
            .all()
        )
        godown_ids: List[str] = []
        for (godown_id,) in ward_rows + local_body_rows:
            if godown_id not in godown_ids:
                godown_ids.append(godown_id)
        return godown_ids

    def get_area_products(self, local_body_id: Optional[str], ward_number: Optional[int]) -> List[Dict[str, Any]]:
        if not local_body_id or not ward_number:
            return []

        godown_ids = self.get_serving_godown_ids(local_body_id, int(ward_number))
        if not godown_ids:
            return []

        stocked_ids = {
            product_id
            for (product_id,) in self.db.query(GodownStock.productID)
            .filter(GodownStock.godownID.in_(godown_ids), GodownStock.quantity > 0)
            .distinct()
            .all()
        }
        if not stocked_ids:
            return []

        products = (
            self.db.query(Product)
            .filter(Product.productID.in_(stocked_ids), Product.is_active.is_(True))
            .order_by(Product.name.asc())
            .all()
        )
        logger.debug(
            "Area products for %s ward %s: %d", local_body_id, ward_number, len(products),
            extra={"godown_count": len(godown_ids)},
        )
        return [product_to_dict(product) for product in products]
