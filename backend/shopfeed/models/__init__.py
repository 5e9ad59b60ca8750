"""SQLAlchemy models for the product catalog.

All models are imported here so metadata.create_all sees every table.
"""

from shopfeed.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from shopfeed.models.product import Product
from shopfeed.models.price_history import PriceHistory

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Product",
    "PriceHistory",
]
