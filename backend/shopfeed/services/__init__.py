"""Services for persisting and importing normalized products."""

from shopfeed.services.product_service import ProductService, UpsertResult
from shopfeed.services.import_service import ImportService, ImportSummary, dedupe_by_source_url

__all__ = [
    "ProductService",
    "UpsertResult",
    "ImportService",
    "ImportSummary",
    "dedupe_by_source_url",
]
