from .router import router
from .service import StopService

__all__ = ["router", "StopService"]
