# API module exports
from .routes import api_router, site_router

__all__ = ["api_router", "site_router", "router"]

# Combine routers
from fastapi import APIRouter
router = APIRouter()
router.include_router(api_router)
router.include_router(site_router)
