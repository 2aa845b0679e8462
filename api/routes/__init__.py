"""HTTP routers."""

from api.routes.notifications import router as notifications_router
from api.routes.stream import router as stream_router
from api.routes.subscriptions import router as subscriptions_router

__all__ = ["notifications_router", "stream_router", "subscriptions_router"]
