from .playback import playback_router
from .status import status_router

__all__ = ["playback_router", "status_router"]
