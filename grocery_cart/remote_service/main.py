"""
Remote Cart Service

In-memory stand-in for the storefront's cart backend, used for local
development and integration tests. Applies client mutations
idempotently and honours per-item sequence numbers.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .database import CartDatabase, CatalogDatabase
from .routes import cart_router, catalog_router

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("GROCERY_LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Remote cart service starting up...")
    yield
    logger.info("Remote cart service shutting down...")


def create_app(catalog_db: Optional[CatalogDatabase] = None) -> FastAPI:
    """Create the service with fresh in-memory storage"""
    app = FastAPI(
        title="Remote Cart Service",
        description="Reference cart backend for the grocery storefront",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.catalog_db = catalog_db or CatalogDatabase()
    app.state.cart_db = CartDatabase(app.state.catalog_db)

    app.include_router(cart_router)
    app.include_router(catalog_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "remote-cart"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "grocery_cart.remote_service.main:app",
        host="0.0.0.0",
        port=int(os.getenv("REMOTE_CART_PORT", "8001")),
        reload=True,
    )
