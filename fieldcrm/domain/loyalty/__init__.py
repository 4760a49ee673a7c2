"""Loyalty domain - points, tiers and referrals"""

from .router import router

__all__ = ["router"]
