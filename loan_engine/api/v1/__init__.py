from fastapi import APIRouter

from loan_engine.api.v1.routers import documents, health, loan_applications, simulations

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(simulations.router)
api_router.include_router(loan_applications.router)
api_router.include_router(documents.router)

__all__ = ["api_router"]
