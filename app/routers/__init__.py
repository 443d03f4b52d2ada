# app/routers/__init__.py
"""
API routers for v1 endpoints.
"""

from app.routers.admin_lifecycle import router as admin_lifecycle_router
from app.routers.lifecycle import router as lifecycle_router

__all__ = [
    "admin_lifecycle_router",
    "lifecycle_router",
]
