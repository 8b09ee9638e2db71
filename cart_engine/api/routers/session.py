#cart_engine/api/routers/session.py
from fastapi import APIRouter, Depends, Request

from cart_engine.api.dependencies import get_device_id, get_service, http_error
from cart_engine.domain.errors import CartError
from cart_engine.domain.schemas import LoginIn, SessionOut
from cart_engine.services.cart_service import CartService

router = APIRouter(prefix="/session", tags=["session"])


@router.post("/login", response_model=SessionOut)
def login(payload: LoginIn, svc: CartService = Depends(get_service)):
    """Token wydaje zewnetrzny serwis auth; tu tylko przejscie stanu + synchronizacja koszyka."""
    try:
        report = svc.login(payload.token)
    except CartError as e:
        raise http_error(e)
    return SessionOut(authenticated=svc.is_authenticated, sync=report)


@router.post("/logout", response_model=SessionOut)
def logout(
    request: Request,
    device_id: str = Depends(get_device_id),
    svc: CartService = Depends(get_service),
):
    svc.logout()
    # pusty koszyk goscia nie ma czego trzymac, serwis urzadzenia zwalniamy
    if svc.guest_store.get().is_empty:
        request.app.state.cart_services.release(device_id)
    return SessionOut(authenticated=False)
