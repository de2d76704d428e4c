"""
Middleware package for the API server.

This package contains middleware classes applied to every response
served by the Deploymint API and dashboard.
"""

from .security import SecurityHeadersMiddleware

__all__ = ["SecurityHeadersMiddleware"]
