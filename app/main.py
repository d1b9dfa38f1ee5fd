from fastapi import FastAPI

from app.partsflow.api import api_router
from app.partsflow.core.config import settings
from app.partsflow.core.errors import setup_exception_handlers
from app.partsflow.core.logging import configure_logging
from app.partsflow.middleware.observability import ObservabilityMiddleware
from app.partsflow.middleware.trace import TraceIdMiddleware


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
