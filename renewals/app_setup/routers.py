"""
Central router registry.
- Renewal flow: form, checkout, success, cancel
- Health: /health
"""
from fastapi import FastAPI
from renewals.membership.views import router as membership_router
from renewals.health.router import router as health_router


def register_routers(app: FastAPI) -> None:
    app.include_router(membership_router)
    app.include_router(health_router)
