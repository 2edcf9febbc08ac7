"""
API routes module.
"""
from api.routes.addon import router as addon_router
from api.routes.playback import router as playback_router

__all__ = ["addon_router", "playback_router"]
