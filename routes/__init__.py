from .trade_routes import router as trade_routes
from .rating_routes import router as rating_routes
from .notification_routes import router as notification_routes

__all__ = [
    'trade_routes',
    'rating_routes',
    'notification_routes'
]
