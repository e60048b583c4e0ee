# Database modules

from .catalog import CatalogDatabase, CatalogProduct
from .carts import CartDatabase, MutationRejected, StoredCart

__all__ = [
    "CatalogDatabase",
    "CatalogProduct",
    "CartDatabase",
    "MutationRejected",
    "StoredCart",
]
