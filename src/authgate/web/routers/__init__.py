from authgate.web.routers.auth import router as auth_router
from authgate.web.routers.principals import router as principals_router
from authgate.web.routers.profile import router as profile_router
from authgate.web.routers.security import router as security_router
from authgate.web.routers.sessions import router as sessions_router

__all__ = [
    "auth_router",
    "principals_router",
    "profile_router",
    "security_router",
    "sessions_router",
]
