"""API routers package.

This package contains all FastAPI routers for the application.
Each router handles a specific domain of the API.
"""

from .auth import router as auth_router
from .comments import router as comments_router
from .dashboard import router as dashboard_router
from .notifications import router as notifications_router
from .projects import router as projects_router
from .tasks import router as tasks_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "comments_router",
    "dashboard_router",
    "notifications_router",
    "projects_router",
    "tasks_router",
    "users_router",
]
