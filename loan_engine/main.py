from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from loan_engine.api.v1 import api_router
from loan_engine.core.errors import register_exception_handlers
from loan_engine.core.health import APP_VERSION
from loan_engine.core.logging import configure_logging
from loan_engine.core.settings import settings
from loan_engine.events import register_event_handlers
from loan_engine.middlewares.request_context import RequestContextMiddleware


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Loan Underwriting Engine", version=APP_VERSION)
    register_exception_handlers(app)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router, prefix="/api/v1")
    register_event_handlers(app)
    return app


app = create_app()
