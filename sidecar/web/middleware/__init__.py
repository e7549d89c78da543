"""
Middleware package for the health server.

This package contains middleware classes applied to every health response.
"""

from .security import NoCacheHeadersMiddleware

__all__ = ["NoCacheHeadersMiddleware"]
