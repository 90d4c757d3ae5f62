# handlers/__init__.py

from .start import router as start_router
from .profile import router as profile_router
from .projects import projects_router
from .developers import router as developers_router
from .connection_requests import router as connection_requests_router

__all__ = [
    "start_router",
    "profile_router",
    "projects_router",
    "developers_router",
    "connection_requests_router",
]
