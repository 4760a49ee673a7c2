"""Support domain - tickets and chatbot escalation"""

from .router import router

__all__ = ["router"]
