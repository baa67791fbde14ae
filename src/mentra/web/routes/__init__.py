"""Route handlers for the Web API."""

from mentra.web.routes.auth import router as auth_router
from mentra.web.routes.dashboard import router as dashboard_router
from mentra.web.routes.goals import router as goals_router
from mentra.web.routes.health import router as health_router
from mentra.web.routes.journal import router as journal_router
from mentra.web.routes.notifications import router as notifications_router
from mentra.web.routes.notifications import ws_router as notifications_ws_router
from mentra.web.routes.problems import router as problems_router

__all__ = [
    "auth_router",
    "dashboard_router",
    "goals_router",
    "health_router",
    "journal_router",
    "notifications_router",
    "notifications_ws_router",
    "problems_router",
]
