"""Opportunities domain - missed-sale pipeline"""

from .router import router

__all__ = ["router"]
