"""API route registration.

Aggregates all API routers into a single router
for inclusion in the main application.
"""

from fastapi import APIRouter

from src.api.routes.auth import router as auth_router
from src.api.routes.automations import router as automations_router
from src.api.routes.connections import router as connections_router
from src.api.routes.events import router as events_router
from src.api.routes.filter_rules import router as filter_rules_router
from src.api.routes.suggestions import router as suggestions_router
from src.api.routes.system import router as system_router
from src.api.routes.wizard import router as wizard_router

# Main API router
api_router = APIRouter()

# Authentication
api_router.include_router(auth_router)
# System
api_router.include_router(system_router, tags=["System"])
# Home Assistant connections and event processing
api_router.include_router(connections_router)
api_router.include_router(events_router)
api_router.include_router(filter_rules_router)
# AI suggestions
api_router.include_router(suggestions_router)
# Automation lifecycle
api_router.include_router(automations_router)
api_router.include_router(wizard_router)

__all__ = ["api_router"]
