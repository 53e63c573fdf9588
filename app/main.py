# Run from project root: uvicorn app.main:app --reload

import logging

from fastapi import FastAPI

from app.api.proxy import proxy_router
from app.api.routes import router
from app.services.backends import Services, build_services

logging.basicConfig(level=logging.INFO)


def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(title="Agentic Search Backend")
    app.state.services = services if services is not None else build_services()
    app.include_router(router)
    app.include_router(proxy_router, prefix="/api")
    return app


app = create_app()
