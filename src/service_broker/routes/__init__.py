"""HTTP route modules for the broker."""

from .osb import create_osb_router, error_response

__all__ = ['create_osb_router', 'error_response']
