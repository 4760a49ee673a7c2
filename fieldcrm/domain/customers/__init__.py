"""Customer domain - customer records and communication preferences"""

from .router import router

__all__ = ["router"]
