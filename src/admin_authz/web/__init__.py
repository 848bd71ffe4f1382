"""
HTTP Form Gateway

FastAPI app serving the filtered configure page.
"""

from .app import create_app

__all__ = ["create_app"]
