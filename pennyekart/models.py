# pennyekart/models.py
from enum import Enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    Integer,
    String,
    Numeric,
    Date,
    DateTime,
    ForeignKey,
    Boolean,
    Text,
    Enum as SAEnum,
)
from sqlalchemy.orm import relationship

# Single shared Base so every model lands in the same metadata
from pennyekart.database import Base


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CampaignStatus(str, Enum):
    INACTIVE = "Inactive"
    SCHEDULED = "Scheduled"
    LIVE = "Live"
    ENDED = "Ended"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


class ProductSource(str, Enum):
    PRODUCT = "product"
    SELLER_PRODUCT = "seller_product"

    @property
    def label(self) -> str:
        return "Admin" if self is ProductSource.PRODUCT else "Seller"


class GodownType(str, Enum):
    LOCAL = "local"
    AREA = "area"
    MICRO = "micro"


# ==============================================
# Catalogs
# ==============================================

class Product(Base):
    __tablename__ = 'Product'
    productID = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    mrp = Column(Numeric(10, 2), nullable=False)
    discount_rate = Column(Numeric(5, 2), default=0)
    image_url = Column(String(512))
    category = Column(String(120))
    section = Column(String(120))
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class SellerProduct(Base):
    __tablename__ = 'SellerProduct'
    sellerProductID = Column(String(36), primary_key=True, default=_new_id)
    sellerID = Column(String(36))
    name = Column(String(255), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    mrp = Column(Numeric(10, 2), nullable=False)
    image_url = Column(String(512))
    is_active = Column(Boolean, nullable=False, default=True)
    is_approved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


# ==============================================
# Flash Sale Models
# ==============================================

class FlashSale(Base):
    __tablename__ = 'FlashSale'
    flashSaleID = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    banner_color = Column(String(20), nullable=False, default='#ef4444')
    _start_time = Column('start_time', DateTime(timezone=True), nullable=False)
    _end_time = Column('end_time', DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    discount_type = Column(
        SAEnum(DiscountType, name="discount_type", native_enum=False, validate_strings=True),
        nullable=False,
        default=DiscountType.PERCENTAGE,
    )
    discount_value = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    line_items = relationship(
        "FlashSaleProduct",
        back_populates="flash_sale",
        order_by="FlashSaleProduct.sort_order",
    )

    @property
    def start_time(self):
        return as_utc(self._start_time)

    @start_time.setter
    def start_time(self, value):
        self._start_time = as_utc(value)

    @property
    def end_time(self):
        return as_utc(self._end_time)

    @end_time.setter
    def end_time(self, value):
        self._end_time = as_utc(value)

    def to_dict(self) -> dict:
        return {
            "id": self.flashSaleID,
            "title": self.title,
            "description": self.description,
            "banner_color": self.banner_color,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "is_active": bool(self.is_active),
            "discount_type": DiscountType(self.discount_type).value if self.discount_type else None,
            "discount_value": float(self.discount_value or 0),
            "created_at": as_utc(self.created_at).isoformat() if self.created_at else None,
        }


class FlashSaleProduct(Base):
    __tablename__ = 'FlashSaleProduct'
    flashSaleProductID = Column(String(36), primary_key=True, default=_new_id)
    flashSaleID = Column(String(36), ForeignKey('FlashSale.flashSaleID'), nullable=False, index=True)
    # No foreign keys on the product columns: catalogs are edited independently
    productID = Column(String(36))
    sellerProductID = Column(String(36))
    flash_price = Column(Numeric(10, 2), nullable=False)
    flash_mrp = Column(Numeric(10, 2), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    flash_sale = relationship("FlashSale", back_populates="line_items")

    @property
    def product_ref(self):
        from pennyekart.services.flash_sale_lifecycle import ProductRef

        return ProductRef.from_columns(self.productID, self.sellerProductID)


# ==============================================
# App configuration and services catalog
# ==============================================

class AppSetting(Base):
    __tablename__ = 'AppSetting'
    key = Column(String(120), primary_key=True)
    value = Column(Text)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Service(Base):
    __tablename__ = 'Service'
    serviceID = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    icon = Column(String(120))
    image_url = Column(String(512))
    price = Column(Numeric(10, 2), nullable=False, default=0)
    category = Column(String(120))
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)


# ==============================================
# Warehouses (godowns) and stock purchases
# ==============================================

class Godown(Base):
    __tablename__ = 'Godown'
    godownID = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    godown_type = Column(
        SAEnum(GodownType, name="godown_type", native_enum=False, validate_strings=True),
        nullable=False,
        default=GodownType.LOCAL,
    )
    is_active = Column(Boolean, nullable=False, default=True)

    stock_entries = relationship("GodownStock", back_populates="godown")


class GodownWard(Base):
    __tablename__ = 'GodownWard'
    godownWardID = Column(Integer, primary_key=True, autoincrement=True)
    godownID = Column(String(36), ForeignKey('Godown.godownID'), nullable=False)
    local_body_id = Column(String(36), nullable=False)
    ward_number = Column(Integer, nullable=False)


class GodownLocalBody(Base):
    __tablename__ = 'GodownLocalBody'
    godownLocalBodyID = Column(Integer, primary_key=True, autoincrement=True)
    godownID = Column(String(36), ForeignKey('Godown.godownID'), nullable=False)
    local_body_id = Column(String(36), nullable=False)


class GodownStock(Base):
    __tablename__ = 'GodownStock'
    stockID = Column(String(36), primary_key=True, default=_new_id)
    godownID = Column(String(36), ForeignKey('Godown.godownID'), nullable=False, index=True)
    productID = Column(String(36), ForeignKey('Product.productID'), nullable=False)
    quantity = Column(Integer, nullable=False)
    purchase_price = Column(Numeric(10, 2), nullable=False, default=0)
    batch_number = Column(String(120))
    expiry_date = Column(Date)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    godown = relationship("Godown", back_populates="stock_entries")
    product = relationship("Product")


# ==============================================
# Orders
# ==============================================

class Order(Base):
    __tablename__ = 'CustomerOrder'
    orderID = Column(String(36), primary_key=True, default=_new_id)
    userID = Column(String(36), index=True)
    sellerID = Column(String(36))
    status = Column(String(50), nullable=False, default='pending')
    total = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_address = Column(Text)
    items = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
