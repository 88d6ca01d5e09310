from .flash_sale_service import FlashSaleService, EnrichedLineItem
from .flash_sale_watcher import ActiveFlashSaleWatcher, CountdownTicker
from .app_settings_service import AppSettingsService, PortalState
from .catalog_service import CatalogService
from .purchase_service import PurchaseService
from .order_service import OrderService
from .blob_storage import BlobStore

__all__ = [
    "FlashSaleService",
    "EnrichedLineItem",
    "ActiveFlashSaleWatcher",
    "CountdownTicker",
    "AppSettingsService",
    "PortalState",
    "CatalogService",
    "PurchaseService",
    "OrderService",
    "BlobStore",
]
