# API Routes

from .cart import router as cart_router
from .catalog import router as catalog_router

__all__ = ["cart_router", "catalog_router"]
