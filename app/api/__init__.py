# app/api/__init__.py
from fastapi import FastAPI

from app.api.errors import register_exception_handlers
from app.api.routers import carts, members
from app.api.routers.health import router as health_router


def create_app() -> FastAPI:
    app = FastAPI(title="Team Cart Service", version="1.0.0")
    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(carts.router)
    app.include_router(members.router)
    return app
