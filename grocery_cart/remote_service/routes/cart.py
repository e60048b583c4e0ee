"""Cart API routes for the remote cart service"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ...models.remote import CartMutation, MutationResult, RemoteCartSnapshot
from ..database.carts import CartDatabase, MutationRejected

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/carts", tags=["Cart"])


def get_cart_db(request: Request) -> CartDatabase:
    return request.app.state.cart_db


@router.get("/{user_id}", response_model=RemoteCartSnapshot)
async def get_cart(user_id: str, cart_db: CartDatabase = Depends(get_cart_db)):
    """Get a shopper's cart snapshot (an empty cart is created on first access)"""
    return cart_db.get_or_create_cart(user_id).snapshot()


@router.post("/{user_id}/mutations", response_model=MutationResult)
async def apply_mutation(
    user_id: str,
    mutation: CartMutation,
    cart_db: CartDatabase = Depends(get_cart_db),
):
    """Apply one client mutation, idempotent by mutation_id"""
    try:
        result = cart_db.apply_mutation(user_id, mutation)
    except MutationRejected as e:
        logger.info(f"Rejected {mutation.kind.value} for {user_id}: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return result


@router.delete("/{user_id}")
async def delete_cart(user_id: str, cart_db: CartDatabase = Depends(get_cart_db)):
    """Forget a shopper's cart"""
    if not cart_db.delete_cart(user_id):
        raise HTTPException(status_code=404, detail="Cart not found")
    return {"deleted": True}
