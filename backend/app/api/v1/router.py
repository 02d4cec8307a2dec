"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import admin_settlements

router = APIRouter()

# Settlement and reconciliation administration
router.include_router(admin_settlements.router)
