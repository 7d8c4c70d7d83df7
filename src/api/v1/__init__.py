"""
API v1 package.

Contains versioned routes for user registration and login identity verification.
"""

from src.api.v1.routes import router

__all__ = ["router"]
