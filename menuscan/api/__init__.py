# API endpoints and routers

from .menu_endpoints import router as menu_router
from .dish_image_endpoints import router as dish_image_router

__all__ = [
    "menu_router",
    "dish_image_router",
]
