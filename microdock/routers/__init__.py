"""
API routers
"""
from microdock.routers import projects, system, operations

__all__ = ["projects", "system", "operations"]
