"""
Catalog boundary.

WHAT: Read-only product lookup (price, title, seller, bargaining flags)
WHY: Session creation captures its reference price from the catalog
HOW: `Catalog` protocol with a SQL implementation over catalog_products
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from ..core.database import get_db
from ..core.models import CatalogProduct


@dataclass(frozen=True)
class ProductInfo:
    """Snapshot of a catalog product at lookup time."""
    product_id: str
    title: str
    price: float
    seller_id: str
    allow_bargaining: bool = True
    auto_bargain: bool = False


class Catalog(Protocol):
    def get_product(self, product_id: str) -> Optional[ProductInfo]:
        ...


class SqlCatalog:
    """Catalog backed by the catalog_products table."""

    def get_product(self, product_id: str) -> Optional[ProductInfo]:
        with get_db() as db:
            row = db.get(CatalogProduct, product_id)
            if row is None:
                return None
            return ProductInfo(
                product_id=row.id,
                title=row.title,
                price=row.price,
                seller_id=row.seller_id,
                allow_bargaining=row.allow_bargaining,
                auto_bargain=row.auto_bargain,
            )
