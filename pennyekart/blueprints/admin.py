from __future__ import annotations

from typing import Any, Dict, List

from flask import Blueprint, current_app, jsonify, request

from pennyekart.blueprints import forbidden, is_admin, json_payload, json_result
from pennyekart.config import Config
from pennyekart.database import get_db
from pennyekart.services.app_settings_service import AppSettingsService
from pennyekart.services.blob_storage import BlobStore
from pennyekart.services.catalog_service import product_to_dict
from pennyekart.services.purchase_service import PurchaseService

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.route("/settings", methods=["GET"])
def view_settings():
    if not is_admin():
        return forbidden()

    values = AppSettingsService(get_db()).get_settings(
        Config.FOOD_DELIVERY_URL_KEY,
        Config.ANDROID_APP_URL_KEY,
        Config.IOS_APP_URL_KEY,
    )
    return jsonify({"settings": values})


@admin_bp.route("/settings", methods=["POST"])
def save_settings():
    if not is_admin():
        return forbidden()

    payload = json_payload()
    service = AppSettingsService(get_db())
    if Config.FOOD_DELIVERY_URL_KEY in payload:
        success, message, _ = service.update_food_delivery_url(payload.get(Config.FOOD_DELIVERY_URL_KEY))
        if not success:
            return json_result(False, message)

    for key in (Config.ANDROID_APP_URL_KEY, Config.IOS_APP_URL_KEY):
        if key in payload:
            success, message, _ = service.update_setting(key, payload.get(key))
            if not success:
                return json_result(False, message)

    return json_result(True, "Settings saved!")


@admin_bp.route("/settings/test-url", methods=["POST"])
def test_settings_url():
    if not is_admin():
        return forbidden()

    reachable, message = AppSettingsService.probe_url(json_payload().get("url"))
    return jsonify({"reachable": reachable, "message": message})


@admin_bp.route("/purchase", methods=["GET"])
def view_purchase_form():
    if not is_admin():
        return forbidden()

    service = PurchaseService(get_db())
    godowns = [{"id": godown.godownID, "name": godown.name} for godown in service.get_local_godowns()]
    products = [product_to_dict(product) for product in service.get_purchasable_products()]
    return jsonify({"godowns": godowns, "products": products})


@admin_bp.route("/purchase", methods=["POST"])
def record_purchase():
    if not is_admin():
        return forbidden()

    payload = request.get_json(silent=True) or {}
    godown_ids: List[str] = payload.get("godown_ids") or []
    items: List[Dict[str, Any]] = payload.get("items") or []
    success, message, row_count = PurchaseService(get_db()).record_purchase(godown_ids, items)
    return json_result(success, message, {"row_count": row_count}, status=201 if success else 400)


@admin_bp.route("/uploads/<bucket>", methods=["POST"])
def upload_image(bucket: str):
    if not is_admin():
        return forbidden()

    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return json_result(False, "Choose an image to upload")

    store = BlobStore(
        root=current_app.config["BLOB_STORAGE_DIR"],
        public_base_url=current_app.config["BLOB_PUBLIC_BASE_URL"],
    )
    success, message, url = store.upload_image(bucket, upload.filename, upload.read())
    return json_result(success, message, {"url": url} if url else None, status=201 if success else 400)
