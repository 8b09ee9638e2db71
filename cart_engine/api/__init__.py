# cart_engine/api/__init__.py
from typing import Callable

from fastapi import FastAPI

from cart_engine.api.dependencies import CartServiceRegistry
from cart_engine.api.routers import carts, health, session
from cart_engine.services.factory import build_cart_service


def create_app(service_factory: Callable = build_cart_service) -> FastAPI:
    app = FastAPI(
        title="Storefront Cart",
        version="1.0.0",
    )
    app.state.cart_services = CartServiceRegistry(service_factory)

    # Include routers
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(session.router)

    return app
