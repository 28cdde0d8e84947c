"""
petmarket/catalog/lookup.py
---------------------------
Authoritative price lookup used at checkout.

Billing never trusts a cart price; it asks the catalog for the current
price and stock state of every line at assembly time.
"""
from dataclasses import dataclass

from petmarket import db
from petmarket.catalog.models import Product
from petmarket.utils.money import to_minor


class ProductNotFound(LookupError):
    """The product reference no longer resolves to a catalog row."""


@dataclass(frozen=True)
class CatalogEntry:
    product_ref: int
    shop_ref:    int
    unit_price:  int      # minor units
    in_stock:    bool
    stock:       int
    is_active:   bool


class SqlCatalog:
    """Catalog backed by the `products` table."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def get_price(self, product_ref) -> CatalogEntry:
        product = self.session.get(Product, product_ref)
        if product is None:
            raise ProductNotFound(product_ref)
        return CatalogEntry(
            product_ref=product.id,
            shop_ref=product.shop_id,
            unit_price=to_minor(product.price),
            in_stock=product.stock > 0,
            stock=product.stock,
            is_active=product.is_active,
        )
