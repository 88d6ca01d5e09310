from __future__ import annotations

from flask import Blueprint, jsonify, request

from pennyekart.blueprints import forbidden, is_admin, json_payload, json_result
from pennyekart.database import get_db
from pennyekart.services.flash_sale_service import FlashSaleService

flash_sales_bp = Blueprint("flash_sales", __name__)


def _get_flash_sale_service() -> FlashSaleService:
    return FlashSaleService(get_db())


# ---------------------------
# Customer
# ---------------------------


@flash_sales_bp.route("/api/flash-sales", methods=["GET"])
def api_visible_flash_sales():
    flash_sales = _get_flash_sale_service().get_visible_flash_sales()
    return jsonify({"flash_sales": flash_sales})


@flash_sales_bp.route("/api/flash-sales/<flash_sale_id>", methods=["GET"])
def api_flash_sale_detail(flash_sale_id: str):
    detail = _get_flash_sale_service().get_flash_sale_detail(flash_sale_id)
    if detail is None:
        return jsonify({"error": "Flash sale not found or has ended"}), 404
    return jsonify({"flash_sale": detail})


@flash_sales_bp.route("/api/flash-sales/<flash_sale_id>/countdown", methods=["GET"])
def api_flash_sale_countdown(flash_sale_id: str):
    countdown = _get_flash_sale_service().get_countdown(flash_sale_id)
    if countdown is None:
        return jsonify({"error": "Flash sale not found"}), 404
    return jsonify(countdown)


@flash_sales_bp.route("/api/flash-sales/<flash_sale_id>/cart-items", methods=["GET"])
def api_flash_sale_cart_items(flash_sale_id: str):
    """Cart payloads for each purchasable item of a live sale."""
    service = _get_flash_sale_service()
    if service.get_flash_sale_detail(flash_sale_id) is None:
        return jsonify({"error": "Flash sale not found or has ended"}), 404
    items = [item.to_cart_item() for item in service.aggregate_line_items(flash_sale_id) if not item.placeholder]
    return jsonify({"items": items})


# ---------------------------
# Admin
# ---------------------------


@flash_sales_bp.route("/admin/flash-sales", methods=["GET"])
def admin_list_flash_sales():
    if not is_admin():
        return forbidden()
    return jsonify({"flash_sales": _get_flash_sale_service().list_flash_sales_for_admin()})


@flash_sales_bp.route("/admin/flash-sales", methods=["POST"])
def admin_create_flash_sale():
    if not is_admin():
        return forbidden()

    payload = json_payload()
    success, message, flash_sale = _get_flash_sale_service().create_flash_sale(
        payload.get("title"),
        payload.get("start_time"),
        payload.get("end_time"),
        description=payload.get("description"),
        banner_color=payload.get("banner_color"),
        discount_type=payload.get("discount_type") or "percentage",
        discount_value=payload.get("discount_value", 0),
    )
    body = {"flash_sale": flash_sale.to_dict()} if flash_sale else None
    return json_result(success, message, body, status=201 if success else 400)


@flash_sales_bp.route("/admin/flash-sales/<flash_sale_id>", methods=["PUT"])
def admin_update_flash_sale(flash_sale_id: str):
    if not is_admin():
        return forbidden()

    payload = json_payload()
    success, message, flash_sale = _get_flash_sale_service().update_flash_sale(
        flash_sale_id,
        payload.get("title"),
        payload.get("start_time"),
        payload.get("end_time"),
        description=payload.get("description"),
        banner_color=payload.get("banner_color"),
        discount_type=payload.get("discount_type"),
        discount_value=payload.get("discount_value"),
    )
    if not success and message == "Flash sale not found":
        return json_result(False, message, status=404)
    body = {"flash_sale": flash_sale.to_dict()} if flash_sale else None
    return json_result(success, message, body)


@flash_sales_bp.route("/admin/flash-sales/<flash_sale_id>/toggle", methods=["POST"])
def admin_toggle_flash_sale(flash_sale_id: str):
    if not is_admin():
        return forbidden()

    success, message, flash_sale = _get_flash_sale_service().toggle_flash_sale(flash_sale_id)
    if not success and flash_sale is None and message == "Flash sale not found":
        return json_result(False, message, status=404)
    body = {"flash_sale": flash_sale.to_dict()} if flash_sale else None
    return json_result(success, message, body)


@flash_sales_bp.route("/admin/flash-sales/<flash_sale_id>", methods=["DELETE"])
def admin_delete_flash_sale(flash_sale_id: str):
    if not is_admin():
        return forbidden()

    success, message, removed = _get_flash_sale_service().delete_flash_sale(flash_sale_id)
    if not success and message == "Flash sale not found":
        return json_result(False, message, status=404)
    return json_result(success, message, {"removed_line_items": removed})


@flash_sales_bp.route("/admin/flash-sales/product-options", methods=["GET"])
def admin_product_options():
    if not is_admin():
        return forbidden()

    options = _get_flash_sale_service().get_product_options(request.args.get("search"))
    return jsonify({"options": options})


@flash_sales_bp.route("/admin/flash-sales/<flash_sale_id>/products", methods=["POST"])
def admin_add_line_item(flash_sale_id: str):
    if not is_admin():
        return forbidden()

    payload = json_payload()
    service = _get_flash_sale_service()
    success, message, item = service.add_line_item(
        flash_sale_id,
        product_id=payload.get("product_id"),
        seller_product_id=payload.get("seller_product_id"),
        flash_price=payload.get("flash_price"),
        flash_mrp=payload.get("flash_mrp"),
    )
    if not success:
        return json_result(False, message)
    items = [entry.to_dict() for entry in service.aggregate_line_items(flash_sale_id)]
    return json_result(True, message, {"line_item_id": item.flashSaleProductID, "items": items}, status=201)


@flash_sales_bp.route("/admin/flash-sales/<flash_sale_id>/products/<item_id>", methods=["DELETE"])
def admin_remove_line_item(flash_sale_id: str, item_id: str):
    if not is_admin():
        return forbidden()

    service = _get_flash_sale_service()
    item = service.get_line_item(item_id)
    if item is None or item.flashSaleID != flash_sale_id:
        return json_result(False, "Line item not found", status=404)

    success, message, items = service.remove_line_item(item_id)
    return json_result(success, message, {"items": [entry.to_dict() for entry in items]})
