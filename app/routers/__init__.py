"""
Eswatini MSME Registry - API Routers Package
"""

from app.routers import auth, business, dashboard

__all__ = ["auth", "business", "dashboard"]
