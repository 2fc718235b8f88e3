# app/api/__init__.py
from fastapi import FastAPI
from app.api.routers import carts, checkout, health, orders, users


def include_routers(app: FastAPI) -> FastAPI:
    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(carts.router)
    app.include_router(checkout.router)
    app.include_router(orders.router)
    return app
