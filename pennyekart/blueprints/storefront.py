from __future__ import annotations

from flask import Blueprint, jsonify, request, session

from pennyekart.database import get_db
from pennyekart.services.app_settings_service import AppSettingsService
from pennyekart.services.catalog_service import CatalogService
from pennyekart.services.order_service import OrderService

storefront_bp = Blueprint("storefront", __name__)


@storefront_bp.route("/api/orders/<order_id>", methods=["GET"])
def api_order_detail(order_id: str):
    if "user_id" not in session:
        return jsonify({"error": "Not authenticated"}), 401

    # Admins may open any order; customers only their own
    user_id = None if session.get("is_admin") else session["user_id"]
    detail = OrderService(get_db()).get_order_detail(order_id, user_id=user_id)
    if detail is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify({"order": detail})


@storefront_bp.route("/api/services", methods=["GET"])
def api_services():
    return jsonify({"groups": CatalogService(get_db()).get_services_grouped()})


@storefront_bp.route("/api/app-downloads", methods=["GET"])
def api_app_downloads():
    return jsonify(AppSettingsService(get_db()).get_app_download_links())


@storefront_bp.route("/api/food-delivery", methods=["GET"])
def api_food_delivery():
    return jsonify(AppSettingsService(get_db()).get_food_delivery_portal().to_dict())


@storefront_bp.route("/api/area-products", methods=["GET"])
def api_area_products():
    local_body_id = request.args.get("local_body_id") or session.get("local_body_id")
    ward_number = request.args.get("ward_number", type=int) or session.get("ward_number")
    products = CatalogService(get_db()).get_area_products(local_body_id, ward_number)
    return jsonify({"products": products})
