# tests/conftest.py
"""
Pytest configuration and fixtures.

The application reads its configuration at import time, so the temporary
database and upload directory are set up before anything from pennyekart is
imported.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

_TEST_ROOT = tempfile.mkdtemp(prefix="pennyekart-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_ROOT, 'test.db')}"
os.environ["BLOB_STORAGE_DIR"] = os.path.join(_TEST_ROOT, "uploads")
os.environ.setdefault("STRUCTURED_LOGS_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret")

from pennyekart.database import Base, SessionLocal, engine  # noqa: E402
from pennyekart.models import FlashSale, FlashSaleProduct, Product, SellerProduct  # noqa: E402
from pennyekart.observability.metrics import reset_metrics  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_schema():
    """Every test starts from empty tables and empty metrics."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    reset_metrics()
    yield


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def now():
    return datetime(2026, 3, 14, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_products(db_session):
    """Two active catalog products and one inactive."""
    products = [
        Product(name="Basmati Rice 5kg", description="Long grain", price=Decimal("80.00"), mrp=Decimal("100.00"), stock=40),
        Product(name="Coconut Oil 1L", description="Cold pressed", price=Decimal("150.00"), mrp=Decimal("150.00"), stock=25),
        Product(name="Discontinued Soap", price=Decimal("20.00"), mrp=Decimal("25.00"), stock=0, is_active=False),
    ]
    db_session.add_all(products)
    db_session.commit()
    return products


@pytest.fixture
def sample_seller_products(db_session):
    """One approved seller product and one awaiting approval."""
    seller_products = [
        SellerProduct(sellerID="seller-1", name="Banana Chips", price=Decimal("45.00"), mrp=Decimal("60.00"), is_approved=True),
        SellerProduct(sellerID="seller-1", name="Homemade Pickle", price=Decimal("90.00"), mrp=Decimal("120.00"), is_approved=False),
    ]
    db_session.add_all(seller_products)
    db_session.commit()
    return seller_products


@pytest.fixture
def live_flash_sale(db_session, sample_products, sample_seller_products):
    """A sale that is live for the next hour with three line items."""
    current = datetime.now(timezone.utc)
    flash_sale = FlashSale(
        title="Weekend Mega Sale",
        start_time=current - timedelta(hours=1),
        end_time=current + timedelta(hours=1),
        discount_value=Decimal("20"),
    )
    db_session.add(flash_sale)
    db_session.flush()
    db_session.add_all(
        [
            FlashSaleProduct(
                flashSaleID=flash_sale.flashSaleID,
                productID=sample_products[0].productID,
                flash_price=Decimal("80.00"),
                flash_mrp=Decimal("100.00"),
                sort_order=0,
            ),
            FlashSaleProduct(
                flashSaleID=flash_sale.flashSaleID,
                sellerProductID=sample_seller_products[0].sellerProductID,
                flash_price=Decimal("40.00"),
                flash_mrp=Decimal("60.00"),
                sort_order=1,
            ),
            FlashSaleProduct(
                flashSaleID=flash_sale.flashSaleID,
                productID=sample_products[1].productID,
                flash_price=Decimal("150.00"),
                flash_mrp=Decimal("150.00"),
                sort_order=2,
            ),
        ]
    )
    db_session.commit()
    return flash_sale


@pytest.fixture
def app():
    from pennyekart.main import app as flask_app

    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app):
    client = app.test_client()
    with client.session_transaction() as session:
        session["user_id"] = "admin-1"
        session["is_admin"] = True
    return client
