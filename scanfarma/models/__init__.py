"""
SQLAlchemy models for ScanFarma.
"""
# Core entities
from scanfarma.models.user import User
from scanfarma.models.pharmacy import Pharmacy

# Catalog & stock
from scanfarma.models.product import Product
from scanfarma.models.batch import Batch

# Event logs
from scanfarma.models.sale_event import SaleEvent
from scanfarma.models.waste_event import WasteEvent
from scanfarma.models.sale_import import SaleImport

# Settings
from scanfarma.models.notification_rule import NotificationRule


__all__ = [
    # Core
    "User",
    "Pharmacy",
    # Catalog & stock
    "Product",
    "Batch",
    # Events
    "SaleEvent",
    "WasteEvent",
    "SaleImport",
    # Settings
    "NotificationRule",
]
