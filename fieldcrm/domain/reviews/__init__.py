"""Reviews domain - review requests and portal submissions"""

from .router import router

__all__ = ["router"]
