"""Product model for normalized catalog entries."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopfeed.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from shopfeed.models.price_history import PriceHistory


class Product(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Product ingested from a source.

    Each product is uniquely identified by its canonical source_url.
    Display fields are patched on every re-import; price changes are
    appended to price_history.
    """

    __tablename__ = "products"

    # Identity
    source_url: Mapped[str] = mapped_column(
        String(2000),
        nullable=False,
        unique=True,
        comment="Canonical product page URL on the source",
    )
    source_platform: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Product info
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    material: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    gender: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    condition: Mapped[str] = mapped_column(String(20), nullable=False, default="new")

    # Pricing
    price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Lowest variant price",
    )
    original_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Compare-at price when above price",
    )

    # Media
    image_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    image_urls: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    # Variants and options
    variants: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    options: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    sizes: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Color grouping
    color_group_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    color_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    color_hex: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)

    last_scraped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last time this product was imported",
    )

    __table_args__ = (
        Index("idx_products_brand_category", "brand", "category"),
    )

    price_history: Mapped[list["PriceHistory"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="PriceHistory.recorded_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name='{self.name[:50]}', source_url='{self.source_url}')>"
