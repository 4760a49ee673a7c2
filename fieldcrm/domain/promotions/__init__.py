"""Promotions domain - offers, claims and redemptions"""

from .router import router

__all__ = ["router"]
