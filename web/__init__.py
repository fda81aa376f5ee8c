"""
Web layer for Meural Manager.
"""

from web.app import create_app

__all__ = ["create_app"]
