from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone

from pennyekart.models import FlashSale, FlashSaleProduct, Order


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def test_customer_banner_and_detail(client, live_flash_sale):
    banners = client.get("/api/flash-sales")
    assert banners.status_code == 200
    payload = banners.get_json()["flash_sales"]
    assert payload[0]["id"] == live_flash_sale.flashSaleID
    assert payload[0]["product_count"] == 3

    detail = client.get(f"/api/flash-sales/{live_flash_sale.flashSaleID}")
    assert detail.status_code == 200
    products = detail.get_json()["flash_sale"]["products"]
    assert [product["name"] for product in products] == ["Basmati Rice 5kg", "Banana Chips", "Coconut Oil 1L"]

    countdown = client.get(f"/api/flash-sales/{live_flash_sale.flashSaleID}/countdown").get_json()
    assert countdown["status"] == "Live"
    assert countdown["countdown"]["expired"] is False

    cart_items = client.get(f"/api/flash-sales/{live_flash_sale.flashSaleID}/cart-items").get_json()["items"]
    assert cart_items[1]["source"] == "seller_product"
    assert cart_items[1]["price"] == 40.0


def test_customer_detail_not_found(client):
    response = client.get("/api/flash-sales/does-not-exist")
    assert response.status_code == 404
    assert "ended" in response.get_json()["error"]


def test_admin_routes_require_admin(client, live_flash_sale):
    assert client.get("/admin/flash-sales").status_code == 403
    assert client.post("/admin/flash-sales", json={}).status_code == 403
    assert client.delete(f"/admin/flash-sales/{live_flash_sale.flashSaleID}").status_code == 403
    assert client.get("/admin/settings").status_code == 403
    assert client.get("/admin/metrics").status_code == 403


def test_admin_flash_sale_lifecycle(admin_client, db_session, sample_products):
    start = datetime.now(timezone.utc) - timedelta(minutes=5)
    end = start + timedelta(hours=2)

    created = admin_client.post(
        "/admin/flash-sales",
        json={"title": "Lunch Hour", "start_time": _iso(start), "end_time": _iso(end), "discount_value": 15},
    )
    assert created.status_code == 201, created.get_json()
    sale_id = created.get_json()["flash_sale"]["id"]

    added = admin_client.post(
        f"/admin/flash-sales/{sale_id}/products", json={"product_id": sample_products[0].productID},
    )
    assert added.status_code == 201
    line_item_id = added.get_json()["line_item_id"]
    assert added.get_json()["items"][0]["price"] == 80.0

    rejected = admin_client.post(
        f"/admin/flash-sales/{sale_id}/products",
        json={"product_id": sample_products[0].productID, "seller_product_id": "s-1"},
    )
    assert rejected.status_code == 400

    listing = admin_client.get("/admin/flash-sales").get_json()["flash_sales"]
    assert listing[0]["discount_label"] == "15% OFF"

    toggled = admin_client.post(f"/admin/flash-sales/{sale_id}/toggle")
    assert toggled.get_json()["flash_sale"]["is_active"] is False

    removed = admin_client.delete(f"/admin/flash-sales/{sale_id}/products/{line_item_id}")
    assert removed.status_code == 200
    assert removed.get_json()["items"] == []

    deleted = admin_client.delete(f"/admin/flash-sales/{sale_id}")
    assert deleted.status_code == 200
    assert db_session.query(FlashSale).count() == 0
    assert db_session.query(FlashSaleProduct).count() == 0
    assert admin_client.delete(f"/admin/flash-sales/{sale_id}").status_code == 404


def test_admin_create_validation_error(admin_client):
    response = admin_client.post("/admin/flash-sales", json={"title": "No dates"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Fill all required fields"


def test_admin_update_flash_sale(admin_client, live_flash_sale):
    end = live_flash_sale.end_time + timedelta(hours=3)
    response = admin_client.put(
        f"/admin/flash-sales/{live_flash_sale.flashSaleID}",
        json={"title": "Extended Sale", "start_time": _iso(live_flash_sale.start_time), "end_time": _iso(end)},
    )
    assert response.status_code == 200
    assert response.get_json()["flash_sale"]["title"] == "Extended Sale"


def test_admin_purchase_rejects_malformed_items(admin_client):
    response = admin_client.post("/admin/purchase", json={"godown_ids": ["g-1"], "items": "abc"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Items must be a list of products"


def test_admin_update_keeps_omitted_description_and_colour(admin_client, db_session, live_flash_sale):
    live_flash_sale.description = "Two hours only"
    live_flash_sale.banner_color = "#0f766e"
    db_session.commit()

    response = admin_client.put(
        f"/admin/flash-sales/{live_flash_sale.flashSaleID}",
        json={"title": "Renamed", "start_time": _iso(live_flash_sale.start_time), "end_time": _iso(live_flash_sale.end_time)},
    )

    assert response.status_code == 200
    flash_sale = response.get_json()["flash_sale"]
    assert flash_sale["description"] == "Two hours only"
    assert flash_sale["banner_color"] == "#0f766e"


def test_admin_update_rejects_out_of_range_percentage(admin_client, live_flash_sale):
    response = admin_client.put(
        f"/admin/flash-sales/{live_flash_sale.flashSaleID}",
        json={
            "title": live_flash_sale.title,
            "start_time": _iso(live_flash_sale.start_time),
            "end_time": _iso(live_flash_sale.end_time),
            "discount_value": 150,
        },
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "Discount must be between 0 and 100 percent"


def test_product_options_search(admin_client, sample_products, sample_seller_products):
    options = admin_client.get("/admin/flash-sales/product-options?search=oil").get_json()["options"]
    assert [option["name"] for option in options] == ["Coconut Oil 1L"]


def test_storefront_settings_roundtrip(admin_client, client):
    assert client.get("/api/food-delivery").get_json()["status"] == "not_configured"

    saved = admin_client.post("/admin/settings", json={"pennycarbs_url": "https://carbs.example.com"})
    assert saved.status_code == 200

    portal = client.get("/api/food-delivery").get_json()
    assert portal == {"status": "ready", "url": "https://carbs.example.com", "message": None}
    assert client.get("/api/app-downloads").get_json()["available"] is False

    invalid = admin_client.post("/admin/settings", json={"pennycarbs_url": "not a url"})
    assert invalid.status_code == 400


def test_order_detail_is_scoped_to_session_user(app, db_session):
    db_session.add(Order(orderID="abcdef123456", userID="user-1", status="delivered", items=[]))
    db_session.commit()

    owner = app.test_client()
    with owner.session_transaction() as session:
        session["user_id"] = "user-1"
    response = owner.get("/api/orders/abcdef123456")
    assert response.status_code == 200
    assert response.get_json()["order"]["status_label"] == "Delivered"

    stranger = app.test_client()
    with stranger.session_transaction() as session:
        session["user_id"] = "user-2"
    assert stranger.get("/api/orders/abcdef123456").status_code == 404
    assert app.test_client().get("/api/orders/abcdef123456").status_code == 401


def test_admin_purchase_and_upload(admin_client, app, db_session, sample_products, tmp_path, monkeypatch):
    from pennyekart.models import Godown

    godown = Godown(name="Central")
    db_session.add(godown)
    db_session.commit()

    form = admin_client.get("/admin/purchase").get_json()
    assert [entry["name"] for entry in form["godowns"]] == ["Central"]

    purchase = admin_client.post(
        "/admin/purchase",
        json={"godown_ids": [godown.godownID], "items": [{"product_id": sample_products[0].productID, "quantity": 5}]},
    )
    assert purchase.status_code == 201
    assert purchase.get_json()["row_count"] == 1

    monkeypatch.setitem(app.config, "BLOB_STORAGE_DIR", str(tmp_path))
    upload = admin_client.post(
        "/admin/uploads/banners",
        data={"file": (io.BytesIO(b"\x89PNG"), "hero.png")},
        content_type="multipart/form-data",
    )
    assert upload.status_code == 201
    assert upload.get_json()["url"].startswith("/static/uploads/banners/")


def test_health_and_metrics(admin_client, client):
    client.get("/api/flash-sales")
    health = client.get("/health")
    assert health.status_code == 200
    assert health.get_json()["components"]["blob_storage"]["status"] == "UP"

    metrics = admin_client.get("/admin/metrics").get_json()
    assert "http_requests_total" in metrics["counters"]
