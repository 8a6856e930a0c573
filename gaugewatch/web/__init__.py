"""
Web module - HTTP operator surface for the dashboard.
"""

from .server import create_app, create_server, run_server

__all__ = ["create_app", "create_server", "run_server"]
