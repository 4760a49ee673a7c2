"""Jobs domain - scheduling, completion and follow-on rewards"""

from .router import router

__all__ = ["router"]
