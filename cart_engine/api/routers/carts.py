#cart_engine/api/routers/carts.py
from fastapi import APIRouter, Body, Depends, HTTPException

from cart_engine.api.dependencies import get_service, http_error
from cart_engine.domain.errors import CartError
from cart_engine.domain.schemas import (
    CartResult,
    CartSummary,
    CouponIn,
    ItemIn,
    QuantityIn,
    VariantIn,
)
from cart_engine.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartResult)
def get_cart(svc: CartService = Depends(get_service)):
    try:
        return svc.get()
    except CartError as e:
        raise http_error(e)


@router.get("/summary", response_model=CartSummary)
def get_summary(svc: CartService = Depends(get_service)):
    try:
        return svc.get_summary()
    except CartError as e:
        raise http_error(e)


@router.post("/items", response_model=CartResult)
def add_item(payload: ItemIn, svc: CartService = Depends(get_service)):
    try:
        return svc.add_item(payload)
    except CartError as e:
        raise http_error(e)


@router.patch("/items/{product_id}", response_model=CartResult)
def update_item(product_id: str, payload: QuantityIn, svc: CartService = Depends(get_service)):
    try:
        return svc.update_item(product_id, payload.quantity, payload.variant)
    except CartError as e:
        raise http_error(e)


@router.delete("/items/{product_id}", response_model=CartResult)
def remove_item(
    product_id: str,
    payload: VariantIn | None = Body(default=None),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.remove_item(product_id, payload.variant if payload else None)
    except CartError as e:
        raise http_error(e)


@router.delete("", response_model=CartResult)
def clear_cart(svc: CartService = Depends(get_service)):
    try:
        return svc.clear()
    except CartError as e:
        raise http_error(e)


@router.post("/coupon", response_model=CartResult)
def apply_coupon(payload: CouponIn, svc: CartService = Depends(get_service)):
    try:
        return svc.apply_coupon(payload.code)
    except CartError as e:
        raise http_error(e)


@router.delete("/coupon/{code}", response_model=CartResult)
def remove_coupon(code: str, svc: CartService = Depends(get_service)):
    if not code.strip():
        raise HTTPException(status_code=400, detail="Coupon code is required")
    try:
        return svc.remove_coupon(code)
    except CartError as e:
        raise http_error(e)
