"""Coupon and availability routes for the remote cart service"""

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from ...models.coupon import Coupon
from ...models.product import ItemAvailability
from ..database.catalog import CatalogDatabase

router = APIRouter(prefix="/api", tags=["Catalog"])


class AvailabilityRequest(BaseModel):
    """Request to check stock for products in a cart"""
    product_ids: list[str] = Field(max_length=100)


def get_catalog_db(request: Request) -> CatalogDatabase:
    return request.app.state.catalog_db


@router.get("/coupons/{code}", response_model=Coupon)
async def get_coupon(code: str, catalog_db: CatalogDatabase = Depends(get_catalog_db)):
    """Resolve a coupon code"""
    coupon = catalog_db.get_coupon(code)
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


@router.post("/products/availability", response_model=list[ItemAvailability])
async def check_availability(
    request: AvailabilityRequest,
    catalog_db: CatalogDatabase = Depends(get_catalog_db),
):
    """Current stock and prices for the given products"""
    return catalog_db.availability(request.product_ids)
