"""Portal domain - customer self-service"""

from .router import router

__all__ = ["router"]
